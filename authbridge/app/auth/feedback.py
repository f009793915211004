"""
Feedback pages shown to the browser at the end of the flow.

The success and failure pages are static apart from language selection and,
for the failure page, a one-shot error message recorded by the result
dispatcher.
"""

import html
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

logger = logging.getLogger("authbridge.auth.feedback")

DEFAULT_LANGUAGE = "en-US"

MESSAGES: Dict[str, Dict[str, Dict[str, str]]] = {
    "en-US": {
        "success": {
            "title": "Authentication Success",
            "message": "You can close this window and return to the application to continue.",
        },
        "failure": {
            "title": "Authentication Failure",
            "message": "You can close this window and return to the application to try again.",
        },
    },
    "pt-BR": {
        "success": {
            "title": "Autenticação bem-sucedida",
            "message": "Você pode fechar esta janela e retornar ao aplicativo para continuar.",
        },
        "failure": {
            "title": "Falha na autenticação",
            "message": "Você pode fechar esta janela e retornar ao aplicativo para tentar novamente.",
        },
    },
}

PAGE_STYLES = """
    #app-body-base {
        display: flex;
        flex-direction: column;
        justify-content: center;
        text-align: center;
        color: rgb(97, 112, 121);
        font-family: "Source Sans Pro", sans-serif, emoji;
    }
    #app-body-base h3 {
        padding: 0;
        font-size: 19px;
        font-weight: 400;
    }
    #app-body-base h5 {
        margin: 0;
        font-size: 17px;
        font-weight: 400;
    }
"""


def get_language(request: Request) -> str:
    """Pick the first Accept-Language entry we have messages for."""
    header = request.headers.get("accept-language") or ""
    first = header.split(",")[0].split(";")[0].strip()
    if first in MESSAGES:
        return first
    return DEFAULT_LANGUAGE


def render_page(body: str, title: str, lang: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="{lang}">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(title)}</title>
    <style>{PAGE_STYLES}</style>
</head>
<body>
    {body}
</body>
</html>
"""


def render_feedback_page(kind: str, lang: str, error_message: Optional[str] = None) -> str:
    """
    Render the success or failure page.

    Args:
        kind: "success" or "failure"
        lang: Language key from MESSAGES
        error_message: Failure detail to show, HTML-escaped here
    """
    messages = MESSAGES.get(lang, MESSAGES[DEFAULT_LANGUAGE])[kind]
    detail = f"<pre>Error: {html.escape(error_message)}</pre>" if error_message else ""
    body = f"""<div id="app-body-base">
        <h3>{html.escape(messages["title"])}</h3>
        <h5>{html.escape(messages["message"])}</h5>
        {detail}
    </div>"""
    return render_page(body, messages["title"], lang)


class FailureNotices:
    """
    One-shot failure messages for the failure page.

    Keyed by the session id of the failed callback, so a browser only sees
    its own failure. Callbacks without any session id share the empty key.
    Only the newest ``max_entries`` notices are kept; pages that are never
    visited do not accumulate.
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self.max_entries = max_entries
        self._notices: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._notices)

    def record(self, session_id: Optional[str], message: str) -> None:
        key = session_id or ""
        self._notices.pop(key, None)
        self._notices[key] = message
        while len(self._notices) > self.max_entries:
            oldest = next(iter(self._notices))
            del self._notices[oldest]
            logger.debug("Dropped unread failure notice", extra={"session_id": oldest})

    def pop(self, session_id: Optional[str]) -> Optional[str]:
        return self._notices.pop(session_id or "", None)


def build_feedback_router(
    notices: FailureNotices,
    success_path: str,
    failure_path: str,
    cookie_name: str,
) -> APIRouter:
    """Create the router serving the success and failure pages."""
    router = APIRouter(tags=["feedback"])

    @router.get(success_path, response_class=HTMLResponse)
    async def success_page(request: Request) -> HTMLResponse:
        return HTMLResponse(render_feedback_page("success", get_language(request)))

    @router.get(failure_path, response_class=HTMLResponse)
    async def failure_page(request: Request) -> HTMLResponse:
        session_id = request.query_params.get("session_id") or request.cookies.get(cookie_name)
        error_message = notices.pop(session_id)
        return HTMLResponse(
            render_feedback_page("failure", get_language(request), error_message)
        )

    return router
