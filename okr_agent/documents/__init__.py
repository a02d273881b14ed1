"""文档处理：PDF 文本提取、token 估算、分块，以及单次/分块两种补全路径的处理管线。"""

from okr_agent.documents.pdf_text import extract_text_from_pdf, is_supported_file_type
from okr_agent.documents.pipeline import DocumentPipeline, NO_CONTENT_RESULT
from okr_agent.documents.text_utils import (
    chunk_document_content,
    clean_document_content,
    estimate_token_count,
    prepare_content,
)

__all__ = [
    "DocumentPipeline",
    "NO_CONTENT_RESULT",
    "chunk_document_content",
    "clean_document_content",
    "estimate_token_count",
    "extract_text_from_pdf",
    "is_supported_file_type",
    "prepare_content",
]
