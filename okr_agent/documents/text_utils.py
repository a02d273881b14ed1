"""文档文本处理：token 估算、清洗、分块与截断。

这些函数是 DocumentPipeline 默认注入的能力，估算规则是启发式的近似值，
不依赖具体模型的分词器。
"""

import re
from typing import Callable, List

_PUNCTUATION = set(".,:;!?()[]{}\"'")
_CHARS_PER_TOKEN = 4

_EXCESS_NEWLINES = re.compile(r"(\r\n|\r|\n){3,}")
_PAGE_MARKER = re.compile(r"---\s*Page\s+\d+\s*---", re.IGNORECASE)
_HORIZONTAL_SPACE = re.compile(r"[ \t]+")
_PARAGRAPH_BREAK = re.compile(r"(?:\r\n|\r|\n){2,}")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


def estimate_token_count(text: str) -> int:
    """粗略估算 token 数：词数 + 半数标点 + 其他符号 + 非 ASCII 字符加权，再加 10% 余量。"""

    if not text:
        return 0
    words = len(text.split())
    punct = sum(1 for c in text if c in _PUNCTUATION)
    special = sum(1 for c in text if not c.isalnum() and not c.isspace() and c not in _PUNCTUATION)
    non_ascii = sum(1 for c in text if ord(c) > 127)
    estimated = words + punct // 2 + special + non_ascii * 2
    return int(estimated * 1.1)


def clean_document_content(text: str) -> str:
    if not text:
        return ""
    cleaned = _EXCESS_NEWLINES.sub("\n\n", text)
    cleaned = _PAGE_MARKER.sub("", cleaned)
    cleaned = _HORIZONTAL_SPACE.sub(" ", cleaned)
    return cleaned.strip()


def prepare_content(
    text: str,
    max_tokens: int = 4000,
    estimate: Callable[[str], int] = estimate_token_count,
) -> str:
    """清洗文档并在超出 token 预算时按字符截断，附加截断说明。"""

    if not text:
        return ""
    cleaned = clean_document_content(text)
    if estimate(cleaned) <= max_tokens:
        return cleaned

    max_chars = max_tokens * _CHARS_PER_TOKEN
    if len(cleaned) <= max_chars:
        return cleaned
    truncated = cleaned[: max(max_chars - 100, 0)]
    return (
        f"{truncated}\n\n[Note: This document has been truncated to fit within token limits. "
        f"The full document is {len(cleaned)} characters.]"
    )


class _ChunkBuilder:
    def __init__(self, chunk_size: int):
        self.chunk_size = chunk_size
        self.chunks: List[str] = []
        self._parts: List[str] = []
        self._tokens = 0

    def flush(self) -> None:
        if self._parts:
            self.chunks.append("".join(self._parts))
        self._parts = []
        self._tokens = 0

    def add(self, text: str, tokens: int, separator: str) -> None:
        if self._tokens and self._tokens + tokens > self.chunk_size:
            self.flush()
        self._parts.append(text + separator)
        self._tokens += tokens

    def add_words(self, sentence: str) -> None:
        """单句超出块大小时按词切分，每段单独成块。"""
        self.flush()
        piece: List[str] = []
        piece_tokens = 0
        for word in sentence.split(" "):
            word_tokens = estimate_token_count(word + " ")
            if piece and piece_tokens + word_tokens > self.chunk_size:
                self.chunks.append(" ".join(piece) + " ")
                piece, piece_tokens = [], 0
            piece.append(word)
            piece_tokens += word_tokens
        if piece:
            self.chunks.append(" ".join(piece) + " ")


def chunk_document_content(text: str, chunk_size: int = 1000) -> List[str]:
    """按段落装箱分块；段落过大时退化为按句，句子过大时按词。"""

    if not text:
        return []
    cleaned = clean_document_content(text)
    if estimate_token_count(cleaned) <= chunk_size:
        return [cleaned]

    builder = _ChunkBuilder(chunk_size)
    paragraphs = [p for p in _PARAGRAPH_BREAK.split(cleaned) if p.strip()]
    for paragraph in paragraphs:
        paragraph_tokens = estimate_token_count(paragraph)
        if paragraph_tokens <= chunk_size:
            builder.add(paragraph, paragraph_tokens, "\n\n")
            continue

        builder.flush()
        for sentence in (s for s in _SENTENCE_BREAK.split(paragraph) if s.strip()):
            sentence_tokens = estimate_token_count(sentence)
            if sentence_tokens > chunk_size:
                builder.add_words(sentence)
            else:
                builder.add(sentence, sentence_tokens, " ")
    builder.flush()
    return builder.chunks
