from playwright.async_api import Page

from constants import Constants
from page_helper import build_call_expression, build_installer_script

PANEL_TEMPLATE = """
<html><body>
  <div class="chat">
    <div id="editor" contenteditable="true" data-lexical-editor="true"
         style="min-height: 40px; width: 400px;">{draft}</div>
    <div class="toolbar">{buttons}</div>
  </div>
</body></html>
"""

TOP_TEMPLATE = """
<html><head><title>{title}</title></head><body>
  {top}
  <iframe id="{iframe_id}" style="width: 640px; height: 480px;"></iframe>
</body></html>
"""


async def load_panel(page: Page, panel_buttons: str = '', draft: str = '', top: str = '',
                     title: str = 'Antigravity', with_panel: bool = True):
    """Render a stand-in for the IDE window with the agent panel iframe and install the helper."""
    if with_panel:
        await page.set_content(TOP_TEMPLATE.format(title=title, top=top, iframe_id=Constants.AGENT_PANEL_IFRAME_ID))
        await page.evaluate(
            """([iframeId, html]) => {
                const doc = document.getElementById(iframeId).contentDocument;
                doc.open();
                doc.write(html);
                doc.close();
            }""",
            [Constants.AGENT_PANEL_IFRAME_ID, PANEL_TEMPLATE.format(draft=draft, buttons=panel_buttons)],
        )
    else:
        await page.set_content(f'<html><head><title>{title}</title></head><body>{top}</body></html>')
    await page.evaluate("() => { window.__clicks = []; }")
    assert (await page.evaluate(build_installer_script()))['installed'] is True


async def call_helper(page: Page, function_name: str, *args):
    payload = await page.evaluate(build_call_expression(function_name, *args))
    assert 'error' not in payload, payload
    return payload.get('value')


async def clicks(page: Page):
    return await page.evaluate("() => window.top.__clicks")
