import asyncio
import logging
from typing import Optional

from tenacity import retry, retry_if_exception_type, retry_if_result, stop_after_attempt, wait_exponential

from cdp_errors import CDPError, DiscoveryFailure, EvaluationFailure, ProtocolTimeout, TransportFailure
from cdp_manager import CDPManager, describe_exception
from constants import Constants
from page_helper import build_call_expression, build_presence_expression

logger = logging.getLogger("AutoAntigravity")


class HelperMissing(EvaluationFailure):
    """The helper namespace is gone from the page, usually after a reload."""


def _log_retry_before_sleep(retry_state):
    """Log retry attempt and include exception details when available."""
    exc = None
    if retry_state.outcome is not None and retry_state.outcome.failed:
        exc = retry_state.outcome.exception()

    attempt = getattr(retry_state, "attempt_number", "unknown")
    name = getattr(retry_state.fn, "__name__", "operation")
    if exc:
        logger.warning(
            f"{name} failed (attempt {attempt}), retrying... "
            f"Exception: {type(exc).__name__}: {exc}"
        )
    else:
        logger.warning(f"{name} failed (attempt {attempt}/{Constants.RETRY_STOP_ATTEMPTS}), retrying...")


class AutoAntigravity:
    """High-level operations on the Antigravity agent panel.

    Every public coroutine returns a plain dict describing the outcome;
    protocol errors are turned into an ``error`` message instead of being
    raised at the caller.
    """
    manager: CDPManager

    def __init__(self, manager: Optional[CDPManager] = None, **manager_options):
        self.manager = manager or CDPManager(**manager_options)

    @classmethod
    async def create(cls, **manager_options) -> 'AutoAntigravity':
        """Create an instance and connect it, retrying discovery a few times."""
        self = cls(**manager_options)
        if not await self.connect():
            raise DiscoveryFailure(
                f"Antigravity is not reachable on ports {self.manager.port_start}-{self.manager.port_end}. "
                f"Start it with --remote-debugging-port={self.manager.port_start}."
            )
        return self

    @retry(
        stop=stop_after_attempt(Constants.RETRY_STOP_ATTEMPTS),
        wait=wait_exponential(multiplier=Constants.RETRY_WAIT_MULTIPLIER, min=Constants.RETRY_WAIT_MIN, max=Constants.RETRY_WAIT_MAX),
        retry=retry_if_result(lambda connected: connected is False),
        retry_error_callback=lambda retry_state: False,
        before_sleep=_log_retry_before_sleep
    )
    async def connect(self) -> bool:
        return await self.manager.try_connect()

    @property
    def is_connected(self) -> bool:
        return self.manager.is_connector_active

    @retry(
        stop=stop_after_attempt(Constants.HELPER_REINSTALL_ATTEMPTS),
        retry=retry_if_exception_type(HelperMissing),
        before_sleep=_log_retry_before_sleep,
        reraise=True
    )
    async def _call_helper(self, function_name: str, *args):
        """Call a page helper function and return its value.

        Reinstalls the helper and retries once if the page lost it.
        """
        if not self.manager.is_connector_active:
            raise TransportFailure("not connected")
        response = await self.manager.evaluate(build_call_expression(function_name, *args))
        if 'exceptionDetails' in response:
            raise EvaluationFailure(describe_exception(response['exceptionDetails']))
        payload = response.get('result', {}).get('value')
        if not isinstance(payload, dict):
            raise EvaluationFailure(f"{function_name} returned no value")
        if payload.get('helperMissing'):
            logger.info("Page helper missing, reinstalling...")
            await self.manager.install_helper()
            raise HelperMissing(f"page helper was missing when calling {function_name}")
        if 'error' in payload:
            raise EvaluationFailure(f"{function_name} threw: {payload['error']}")
        if 'value' not in payload:
            raise EvaluationFailure(f"{function_name} returned no value")
        return payload['value']

    @staticmethod
    def _error_message(action: str, error: CDPError) -> str:
        if isinstance(error, TransportFailure):
            message = "not connected" if str(error) == "not connected" else f"not connected: {error}"
        elif isinstance(error, ProtocolTimeout):
            message = f"timed out: {error}"
        else:
            message = str(error)
        logger.warning(f"Failed to {action}: {message}")
        return message

    async def find_chat_input(self) -> dict:
        try:
            return await self._call_helper('describeChatInput')
        except CDPError as e:
            return {'found': False, 'error': self._error_message('find chat input', e)}

    async def find_submit_button(self) -> dict:
        try:
            return await self._call_helper('describeSubmitButton')
        except CDPError as e:
            return {'found': False, 'error': self._error_message('find submit button', e)}

    async def get_prompt_text(self) -> Optional[str]:
        try:
            return await self._call_helper('getPromptText')
        except CDPError as e:
            self._error_message('read prompt text', e)
            return None

    async def is_helper_installed(self) -> bool:
        if not self.manager.is_connector_active:
            return False
        try:
            response = await self.manager.evaluate(build_presence_expression())
        except CDPError as e:
            logger.debug(f"Helper presence check failed: {e}")
            return False
        return response.get('result', {}).get('value') is True

    async def inject_prompt(self, text: str) -> dict:
        logger.debug(f'Injecting prompt: "{text[:80]}"')
        try:
            injected = await self._call_helper('injectPrompt', text)
        except CDPError as e:
            return {'success': False, 'error': self._error_message('inject prompt', e)}
        if injected is True:
            return {'success': True}
        chat_input = await self.find_chat_input()
        if not chat_input.get('found'):
            return {'success': False, 'error': chat_input.get('error') or 'chat input not found. Is the agent panel open?'}
        return {'success': False, 'error': 'prompt text did not appear in the chat input'}

    async def submit_prompt(self) -> dict:
        logger.debug('Submitting prompt...')
        try:
            submitted = await self._call_helper('submitPrompt')
        except CDPError as e:
            return {'success': False, 'error': self._error_message('submit prompt', e)}
        if submitted is True:
            return {'success': True}
        return {'success': False, 'error': 'submit button not found or disabled'}

    async def send_prompt(self, text: str) -> dict:
        """Inject then submit. Each step completes before the next starts."""
        injected = await self.inject_prompt(text)
        if not injected['success']:
            return injected
        await asyncio.sleep(Constants.WAIT_AFTER_INJECT)
        return await self.submit_prompt()

    async def click_accept_buttons(self) -> dict:
        try:
            counts = await self._call_helper('clickAcceptButtons')
            if not isinstance(counts, dict):
                raise EvaluationFailure(f"clickAcceptButtons returned {type(counts).__name__}, expected counts")
        except CDPError as e:
            return {'found': 0, 'clicked': 0, 'error': self._error_message('click accept buttons', e)}
        result = {'found': int(counts.get('found', 0)), 'clicked': int(counts.get('clicked', 0))}
        if result['found'] == 0:
            result['message'] = 'no accept button found'
        elif result['clicked'] < result['found']:
            logger.warning(f"Clicked {result['clicked']} of {result['found']} accept buttons")
        else:
            logger.info(f"Clicked {result['clicked']} accept buttons")
        return result

    async def status(self) -> dict:
        return {
            'connected': self.manager.is_connector_active,
            'state': self.manager.state.value,
            'port': self.manager.port,
            'title': self.manager.target_title,
            'helperInstalled': await self.is_helper_installed(),
        }

    async def close(self):
        logger.debug('Closing CDP connection...')
        await self.manager.dispose()
