import json
import socket

import pytest
import pytest_asyncio
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from cdp_manager import CDPManager

INSTALLED = {'installed': True, 'version': 1}


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


def evaluate_result(value) -> dict:
    """Runtime.evaluate result for a by-value evaluation."""
    return {'result': {'type': 'object', 'value': value}}


class FakeCDPEndpoint:
    """Scripted stand-in for one page target of a debugging endpoint.

    ``responder`` is awaited for every inbound command; the default one
    answers the helper installer and looks up helper calls in
    ``helper_values`` by function name.
    """

    def __init__(self):
        self.received = []
        self.connections = []
        self.helper_values = {}
        self.responder = self.default_responder
        self.port = None
        self._server = None

    @property
    def ws_url(self) -> str:
        return f"ws://127.0.0.1:{self.port}/devtools/page/FAKE-PAGE"

    def target(self, **overrides) -> dict:
        target = {
            'id': 'FAKE-PAGE',
            'type': 'page',
            'title': 'Antigravity - workspace',
            'url': 'vscode-file://vscode-app/out/vs/code/electron-browser/workbench/workbench.html',
            'webSocketDebuggerUrl': self.ws_url,
        }
        target.update(overrides)
        return target

    def expressions(self):
        return [m['params']['expression'] for m in self.received if m.get('method') == 'Runtime.evaluate']

    async def start(self):
        self._server = await serve(self._handle, '127.0.0.1', 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self):
        self._server.close()
        await self._server.wait_closed()

    async def _handle(self, ws):
        self.connections.append(ws)
        try:
            async for raw in ws:
                message = json.loads(raw)
                self.received.append(message)
                await self.responder(ws, message)
        except ConnectionClosed:
            pass

    @staticmethod
    async def reply(ws, message, result=None, error=None):
        payload = {'id': message['id']}
        if error is not None:
            payload['error'] = error
        else:
            payload['result'] = result if result is not None else {}
        await ws.send(json.dumps(payload))

    async def default_responder(self, ws, message):
        if message.get('method') != 'Runtime.evaluate':
            await self.reply(ws, message, {})
            return
        expression = message['params']['expression']
        if expression.startswith('(function (config)'):
            await self.reply(ws, message, evaluate_result(INSTALLED))
            return
        for name, value in self.helper_values.items():
            if f'ns.{name}(' in expression:
                await self.reply(ws, message, evaluate_result({'value': value}))
                return
        if 'ns.' in expression:
            await self.reply(ws, message, evaluate_result({'value': None}))
            return
        await self.reply(ws, message, evaluate_result(True))


@pytest_asyncio.fixture
async def cdp_endpoint():
    endpoint = FakeCDPEndpoint()
    await endpoint.start()
    yield endpoint
    await endpoint.stop()


@pytest.fixture
def discovery(httpserver, cdp_endpoint):
    """Serve the fake endpoint's target list on the HTTP discovery path."""
    httpserver.expect_request('/json/list').respond_with_json([
        {'id': 'SERVICE-WORKER', 'type': 'service_worker', 'title': 'sw', 'url': 'https://x/sw.js',
         'webSocketDebuggerUrl': 'ws://127.0.0.1:1/devtools/page/SERVICE-WORKER'},
        cdp_endpoint.target(),
    ])
    return httpserver


@pytest_asyncio.fixture
async def manager(discovery):
    manager = CDPManager(
        port_start=discovery.port,
        port_end=discovery.port,
        host=discovery.host,
        command_timeout=2.0,
    )
    yield manager
    await manager.dispose()
