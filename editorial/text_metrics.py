"""Plain-text metrics over HTML article bodies (word counts, readability)."""

import re

from bs4 import BeautifulSoup

_VOWEL_GROUP = re.compile(r"[aeiouy]+")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
# Link shortcode markup; the linked text between the tags is kept
_SHORTCODE_TAG = re.compile(r"\[/?ge_(?:internal|affiliate|external)_link\b[^\]]*\]")


def strip_html(html: str) -> str:
    """Return visible text with whitespace collapsed. Script/style bodies are dropped."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    text = _SHORTCODE_TAG.sub(" ", soup.get_text(" "))
    return re.sub(r"\s+", " ", text).strip()


def count_words(html: str) -> int:
    return len(strip_html(html).split())


def split_sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def estimate_syllables(words: list[str]) -> int:
    """Vowel-group heuristic; every word counts for at least one syllable."""
    total = 0
    for word in words:
        groups = _VOWEL_GROUP.findall(word.lower())
        total += len(groups) if groups else 1
    return total


def readability(html: str) -> dict:
    """Average sentence length, Flesch reading ease and Flesch-Kincaid grade.

    Returns zeros when the text has no words or no sentences.
    """
    text = strip_html(html)
    words = text.split()
    sentences = split_sentences(text)
    if not words or not sentences:
        return {
            "word_count": len(words),
            "sentence_count": len(sentences),
            "avg_words_per_sentence": 0,
            "flesch_reading_ease": 0,
            "flesch_kincaid_grade": 0,
        }

    words_per_sentence = len(words) / len(sentences)
    syllables_per_word = estimate_syllables(words) / len(words)
    ease = 206.835 - 1.015 * words_per_sentence - 84.6 * syllables_per_word
    grade = 0.39 * words_per_sentence + 11.8 * syllables_per_word - 15.59
    return {
        "word_count": len(words),
        "sentence_count": len(sentences),
        "avg_words_per_sentence": round(words_per_sentence),
        "flesch_reading_ease": round(ease),
        "flesch_kincaid_grade": round(grade, 1),
    }
