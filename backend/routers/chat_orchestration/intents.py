"""
Intent Classifier - spots authentication utterances before any model call.

Pure function of (utterance, authenticated flag):
- authenticated conversation -> None
- a standalone 6-digit run   -> VerifyCode (first run wins)
- "soy / me llamo / mi nombre es / my name is / I am / I'm <name>"
                             -> RequestAuth
- otherwise                  -> None
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

CODE_PATTERN = re.compile(r"\b([0-9]{6})\b")

NAME_PATTERN = re.compile(
    r"\b(?:soy|mi nombre es|me llamo|my name is|i am|i'm)\s+([^\W\d_]+(?:\s+[^\W\d_]+)*)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RequestAuth:
    name: str


@dataclass(frozen=True)
class VerifyCode:
    code: str


AuthIntent = Union[RequestAuth, VerifyCode]


def classify_intent(text: str, is_authenticated: bool) -> Optional[AuthIntent]:
    if is_authenticated:
        return None

    code_match = CODE_PATTERN.search(text)
    if code_match:
        return VerifyCode(code=code_match.group(1))

    name_match = NAME_PATTERN.search(text)
    if name_match:
        name = " ".join(name_match.group(1).split())
        if name:
            return RequestAuth(name=name)

    return None
