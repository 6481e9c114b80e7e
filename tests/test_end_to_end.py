import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from auto_antigravity import AutoAntigravity
from browser_page import clicks, load_panel
from conftest import unused_port

pytestmark = pytest.mark.browser


@pytest_asyncio.fixture
async def debuggable_page():
    """A Chromium page shaped like the IDE window, reachable over its debugging port."""
    port = unused_port()
    async with async_playwright() as p:
        try:
            browser = await p.chromium.launch(args=[f'--remote-debugging-port={port}'])
        except PlaywrightError as e:
            pytest.skip(f"Chromium is not available: {e}")
        page = await browser.new_page()
        panel = '<button onclick="window.top.__clicks.push(\'apply\')">Apply</button>'
        await load_panel(page, panel_buttons=panel, draft='stale draft', title='Antigravity')
        yield page, port
        await browser.close()


@pytest.mark.asyncio
async def test_drive_agent_panel_over_debugging_port(debuggable_page):
    page, port = debuggable_page
    ide = AutoAntigravity(port_start=port, port_end=port)
    try:
        assert await ide.connect()
        status = await ide.status()
        assert status['connected'] is True
        assert status['port'] == port
        assert status['helperInstalled'] is True

        chat_input = await ide.find_chat_input()
        assert chat_input['found'] is True
        assert chat_input['isLexical'] is True

        assert await ide.inject_prompt('Run the tests and fix what fails') == {'success': True}
        prompt = await ide.get_prompt_text()
        assert 'Run the tests and fix what fails' in prompt
        assert 'stale draft' not in prompt

        assert await ide.click_accept_buttons() == {'found': 1, 'clicked': 1}
        assert await clicks(page) == ['apply']
    finally:
        await ide.close()
    assert not ide.is_connected
