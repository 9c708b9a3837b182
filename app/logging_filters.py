# --- Global log sanitizer: HTML error pages and base64 image blobs ---------------
import logging, re

_HTML_SIG_RE = re.compile(r'(?is)<!DOCTYPE html|<html[^>]*>')
_TITLE_RE    = re.compile(r'(?is)<title[^>]*>(.*?)</title>')
_TAG_RE      = re.compile(r'(?is)<[^>]+>')
_SCRIPT_RE   = re.compile(r'(?is)<(script|style)[^>]*>.*?</\1>')
# long unbroken base64 runs (product images inside TPOS payloads)
_B64_RE      = re.compile(r'[A-Za-z0-9+/]{256,}={0,2}')

def _strip_tags(s: str) -> str:
    s = _SCRIPT_RE.sub('', s)
    s = _TAG_RE.sub(' ', s)
    return re.sub(r'\s+', ' ', s).strip()

def _summarize_html(s: str, limit: int = 200) -> str:
    title = None
    m = _TITLE_RE.search(s)
    if m:
        title = _strip_tags(m.group(1))
    preview = title or _strip_tags(s)[:limit]
    return f"{preview} [HTML {len(s)} chars trimmed]"

def _trim_base64(s: str) -> str:
    return _B64_RE.sub(lambda m: f"<base64 {len(m.group(0))} chars>", s)

class LogTrimFilter(logging.Filter):
    """Replace HTML pages with a short summary and collapse base64 blobs."""
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except Exception:
            return True
        if not isinstance(msg, str) or len(msg) <= 200:
            return True
        if _HTML_SIG_RE.search(msg):
            record.msg = _summarize_html(msg)
            record.args = ()
        elif _B64_RE.search(msg):
            record.msg = _trim_base64(msg)
            record.args = ()
        return True

def install_log_filters() -> None:
    # install once on common loggers (root + uvicorn family)
    for _name in ("", "uvicorn", "uvicorn.error"):
        lg = logging.getLogger(_name)
        if not any(isinstance(f, LogTrimFilter) for f in lg.filters):
            lg.addFilter(LogTrimFilter())
# --------------------------------------------------------------------------------
