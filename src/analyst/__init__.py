from .schemas import ParsedFields, RawFundingRecord
from .parser import parse_article, strip_html
from .extractor import (
    extract,
    extract_with_llm,
    convert_to_record,
    LLM_CIRCUIT_NAME,
)

__all__ = [
    "ParsedFields",
    "RawFundingRecord",
    "parse_article",
    "strip_html",
    "extract",
    "extract_with_llm",
    "convert_to_record",
    "LLM_CIRCUIT_NAME",
]
