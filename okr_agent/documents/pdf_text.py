"""上传文档的文本提取。

目前只支持 PDF：逐页提取文本，每页前写入 ``--- Page N ---`` 标记，
后续由 clean_document_content 清洗掉这些标记。
"""

import io
from pathlib import Path
from typing import BinaryIO, Optional, Union

import pdfplumber

from okr_agent.infrastructure.logging.logger import logger

PDF_CONTENT_TYPE = "application/pdf"
SUPPORTED_CONTENT_TYPES = frozenset({PDF_CONTENT_TYPE})

PdfSource = Union[str, Path, bytes, BinaryIO]


def is_supported_file_type(content_type: Optional[str]) -> bool:
    """按 MIME 类型判断是否支持提取，不区分大小写。"""
    return bool(content_type) and content_type.strip().lower() in SUPPORTED_CONTENT_TYPES


def extract_text_from_pdf(source: PdfSource) -> str:
    """逐页提取 PDF 文本。

    Args:
        source: 文件路径、PDF 字节或可 seek 的二进制流。

    Returns:
        带页标记的文本；提取失败时返回 "Error extracting text: ..."，不抛异常。
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    elif hasattr(source, "seek"):
        source.seek(0)

    try:
        parts = []
        with pdfplumber.open(source) as pdf:
            total = len(pdf.pages)
            logger.info("PDF opened", extra={"extra": {"pages": total}})
            for number, page in enumerate(pdf.pages, start=1):
                page_text = page.extract_text() or ""
                parts.append(f"--- Page {number} ---\n{page_text}\n\n")
                if number % 10 == 0 and total > 20:
                    logger.info("PDF extraction progress", extra={"extra": {"page": number, "pages": total}})
    except Exception as exc:
        logger.error("Error extracting text from PDF", exc_info=True, extra={"extra": {"error": str(exc)}})
        return f"Error extracting text: {exc}"

    text = "".join(parts)
    logger.info(
        "Extracted text from PDF",
        extra={"extra": {"characters": len(text), "pages": len(parts)}},
    )
    return text
