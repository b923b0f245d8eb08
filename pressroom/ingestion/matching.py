"""Text matching helpers shared by the format parsers."""

import re
from typing import Iterable, List, Pattern

REPLY_ALIAS_PATTERN = re.compile(r"send\+[\d.]+@tmxmessenger\.com", re.IGNORECASE)

_BULLET_QUESTION = re.compile(r"^[ \t]*[-•*][ \t]*([^\r\n]+?\?)", re.MULTILINE)
_QUESTION_SECTION = re.compile(
    r"(?:trying to answer|questions?)\s*:\s*(.+?)(?=We're hoping|Please|Thanks|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_SENTENCE_QUESTION = re.compile(r"[^.!?\r\n]*\?")


def has_term(text: str, *terms: str) -> bool:
    """True if any term starts a word in ``text`` ('call' matches 'calls', not 'critically')."""
    return any(re.search(r"\b" + re.escape(term), text, re.IGNORECASE) for term in terms)


def unique(values: Iterable[str]) -> List[str]:
    """Drop empty values and repeats, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def collect_groups(patterns: Iterable[Pattern], text: str) -> List[str]:
    """First capture group of every match of every pattern, deduplicated."""
    found = []
    for pattern in patterns:
        for match in pattern.finditer(text):
            if match.group(1):
                found.append(" ".join(match.group(1).split()))
    return unique(found)


def extract_questions(text: str, min_length: int = 0) -> List[str]:
    """Bulleted question lines plus question sentences after a questions label."""
    questions = [match.group(1) for match in _BULLET_QUESTION.finditer(text)]

    section = _QUESTION_SECTION.search(text)
    if section:
        for sentence in _SENTENCE_QUESTION.findall(section.group(1)):
            sentence = sentence.strip().lstrip("-•* \t").strip()
            if len(sentence) > min_length:
                questions.append(sentence)

    return unique(questions)
