# panel_router/pages.py
# HTML shown to respondents on the public start/callback endpoints.
import html
import json

REDIRECT_DELAY_MS = 2000

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title}</title>
  <style>
    body {{ font-family: -apple-system, "Segoe UI", Roboto, sans-serif; background: #f5f6f8;
           display: flex; align-items: center; justify-content: center; min-height: 100vh; margin: 0; }}
    .card {{ background: #fff; border-radius: 8px; padding: 2rem 2.5rem; max-width: 480px;
            box-shadow: 0 2px 12px rgba(0, 0, 0, 0.08); text-align: center; }}
    h1 {{ font-size: 1.4rem; margin-top: 0; color: {accent}; }}
    p {{ color: #444; line-height: 1.5; }}
  </style>
</head>
<body>
  <div class="card">
    <h1>{heading}</h1>
    {body}
  </div>
  {script}
</body>
</html>
"""


def render_error_page(error_message: str) -> str:
    return _PAGE.format(
        title="Survey error",
        accent="#c0392b",
        heading="Unable to continue",
        body=f"<p>{html.escape(error_message)}</p>",
        script="",
    )


def render_callback_page(message: str, redirect_url: str = "") -> str:
    if redirect_url:
        redirect_message = "Redirecting you back to the vendor..."
        # json.dumps yields a JS string literal; "</" is split so it cannot close the tag
        target = json.dumps(redirect_url).replace("</", "<\\/")
        script = (
            "<script>setTimeout(function() { window.location.href = "
            f"{target}; }}, {REDIRECT_DELAY_MS});</script>"
        )
    else:
        redirect_message = "You can close this window now."
        script = ""

    return _PAGE.format(
        title="Survey status",
        accent="#27ae60",
        heading=html.escape(message),
        body=f"<p>{redirect_message}</p>",
        script=script,
    )
