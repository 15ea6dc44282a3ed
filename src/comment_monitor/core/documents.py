"""Document URL parsing."""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

_DOC_PATH_RE = re.compile(r"/(docx|docs|wiki)/([a-zA-Z0-9]+)")


@dataclass(frozen=True)
class DocumentRef:
    """Document identified from a share URL."""

    kind: str
    document_id: str


def parse_document_url(url: str) -> Optional[DocumentRef]:
    """Extract the document id from a Feishu/Lark document URL.

    Supported paths::

        https://example.feishu.cn/docx/doxcnXXXX
        https://example.feishu.cn/docs/doccnXXXX
        https://example.feishu.cn/wiki/wikcnXXXX
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return None

    if not parsed.scheme or not parsed.netloc:
        return None

    match = _DOC_PATH_RE.search(parsed.path)
    if not match:
        return None
    return DocumentRef(kind=match.group(1), document_id=match.group(2))
