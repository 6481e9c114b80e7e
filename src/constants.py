# Constants
class Constants:
    # Ports
    HOST = '127.0.0.1'
    PORT_START = 9000
    PORT_END = 9003

    # Timeouts (in seconds)
    TIMEOUT_DISCOVERY_PROBE = 0.5
    TIMEOUT_SOCKET_OPEN = 5.0
    # Long enough for a UI evaluation, short enough to surface a hung page.
    TIMEOUT_COMMAND = 10.0
    TIMEOUT_IDE_START_ITERATIONS = 30
    TIMEOUT_IDE_START_SLEEP = 1
    TERMINATE_TIMEOUT = 2

    # Delay between injecting a prompt and clicking submit, so the editor
    # has committed its model update.
    WAIT_AFTER_INJECT = 0.2

    # Discovery
    DISCOVERY_PATH = '/json/list'
    VERSION_PATH = '/json/version'
    TARGET_TYPE_PAGE = 'page'
    TARGET_URL_SIGNATURE = 'workbench'
    TARGET_TITLE_SIGNATURE = 'Antigravity'

    # Page helper
    HELPER_NAMESPACE = '__antigravityForLoop'
    HELPER_VERSION = 1
    AGENT_PANEL_IFRAME_ID = 'antigravity.agentPanel'
    SELECTOR_LEXICAL_EDITOR = '[data-lexical-editor="true"]'
    ACCEPT_VOCABULARY = ['accept', 'accept all', 'apply', 'keep', 'allow', 'approve']
    REJECT_VOCABULARY = ['reject', 'cancel', 'decline', 'deny', 'discard', 'dismiss', 'undo', 'stop', "don't", 'no']
    SUBMIT_VOCABULARY = ['submit', 'send']

    # IDE launcher
    IDE_EXECUTABLE = 'antigravity'

    # Retry settings
    RETRY_STOP_ATTEMPTS = 3
    RETRY_WAIT_MULTIPLIER = 0.5
    RETRY_WAIT_MIN = 0.5
    RETRY_WAIT_MAX = 2.0
    HELPER_REINSTALL_ATTEMPTS = 2
