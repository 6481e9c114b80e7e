"""JavaScript installed into the IDE window to drive the agent panel.

Everything here runs inside the remote page. Functions live on a single
namespaced global so the host can call them by name through
``Runtime.evaluate``. Only plain values (booleans, strings, records) are
returned to the host; DOM nodes never cross the protocol boundary.
"""
import json

from constants import Constants

HELPER_BODY = r"""
    'use strict';

    const normalize = (text) => (text || '')
        .replace(/[‘’]/g, "'")
        .replace(/\s+/g, ' ')
        .trim()
        .toLowerCase();

    // Lexical renders paragraphs and non-breaking spaces, so compare text
    // with all whitespace removed.
    const squash = (text) => String(text || '').replace(/\s+/g, '');

    const escapeRegExp = (s) => s.replace(/[.*+?^${}()|[\]\\]/g, '\\$&');

    const REJECT_PATTERN = new RegExp(
        "(^|[^a-z'])(" + config.rejectWords.map(escapeRegExp).join('|') + ")(?![a-z'])"
    );

    // Exact match, or the word followed by a non-letter ("Accept all", "Apply (Ctrl+Enter)").
    function startsWithWord(text, words) {
        return words.some((word) => {
            if (text === word) return true;
            return text.startsWith(word) && !/[a-z]/.test(text.charAt(word.length));
        });
    }

    function isRejectText(text) {
        return !!text && REJECT_PATTERN.test(text);
    }

    function getPanelDocument() {
        const iframe = document.getElementById(config.iframeId);
        if (!iframe) return null;
        try {
            return iframe.contentDocument || (iframe.contentWindow && iframe.contentWindow.document) || null;
        } catch (e) {
            // Cross-origin or not yet loaded.
            return null;
        }
    }

    function isVisible(el) {
        if (!el || !el.isConnected) return false;
        const rect = el.getBoundingClientRect();
        if (rect.width <= 0 || rect.height <= 0) return false;
        const view = (el.ownerDocument && el.ownerDocument.defaultView) || window;
        const style = view.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden';
    }

    function isDisabled(el) {
        return !!el.disabled || el.getAttribute('aria-disabled') === 'true';
    }

    function labelOf(el) {
        return normalize(el.getAttribute('aria-label') || el.getAttribute('title') || '');
    }

    function classifyButton(el) {
        if (!el) return 'neutral';
        const text = normalize(el.textContent);
        const label = labelOf(el);
        // Reject words always win, whatever else the button looks like.
        if (isRejectText(text) || isRejectText(label)) return 'neutral';
        if (!isVisible(el)) return 'neutral';
        if (startsWithWord(text, config.acceptWords)) {
            return isDisabled(el) ? 'neutral' : 'accept';
        }
        if (startsWithWord(text, config.submitWords) || startsWithWord(label, config.submitWords)
                || (el.getAttribute('type') || '').toLowerCase() === 'submit') {
            return 'submit';
        }
        return 'neutral';
    }

    function isAcceptButton(el) {
        return classifyButton(el) === 'accept';
    }

    function findChatInput() {
        const doc = getPanelDocument();
        if (!doc) return null;
        const input = doc.querySelector(config.editorSelector);
        if (!input) return null;
        input._iframeDoc = doc;
        return input;
    }

    function injectPrompt(text) {
        const input = findChatInput();
        if (!input) return false;
        const doc = input._iframeDoc;
        const value = String(text);
        // Go through the editor's own input pipeline; writing textContent
        // would leave the editor model out of sync with what gets submitted.
        input.focus();
        doc.execCommand('selectAll', false, null);
        doc.execCommand('delete', false, null);
        doc.execCommand('insertText', false, value);
        return squash(input.textContent).includes(squash(value));
    }

    function getPromptText() {
        const input = findChatInput();
        return input ? (input.textContent || '') : null;
    }

    function buttonsIn(doc) {
        return Array.from(doc.querySelectorAll('button, [role="button"]'));
    }

    function findSubmitButton() {
        const input = findChatInput();
        if (!input) return null;
        const buttons = buttonsIn(input._iframeDoc);
        const submit = buttons.find((el) => classifyButton(el) === 'submit');
        if (submit) return submit;
        // Icon-only controls: the last visible button sharing a container
        // with the editor.
        let container = input.parentElement;
        for (let depth = 0; container && depth < 6; depth++, container = container.parentElement) {
            const nearby = buttonsIn(container).filter((el) => isVisible(el) && classifyButton(el) !== 'accept'
                && !isRejectText(normalize(el.textContent)) && !isRejectText(labelOf(el)));
            if (nearby.length) return nearby[nearby.length - 1];
        }
        return null;
    }

    function dispatchClick(el) {
        const view = (el.ownerDocument && el.ownerDocument.defaultView) || window;
        const init = { bubbles: true, cancelable: true, view: view };
        for (const type of ['pointerdown', 'mousedown', 'pointerup', 'mouseup']) {
            const Ctor = type.startsWith('pointer') && view.PointerEvent ? view.PointerEvent : view.MouseEvent;
            el.dispatchEvent(new Ctor(type, init));
        }
        el.click();
    }

    function submitPrompt() {
        const button = findSubmitButton();
        if (!button || isDisabled(button)) return false;
        dispatchClick(button);
        return true;
    }

    function collectButtons() {
        const docs = [document];
        const panel = getPanelDocument();
        if (panel && panel !== document) docs.push(panel);
        const seen = new Set();
        const buttons = [];
        for (const doc of docs) {
            for (const el of buttonsIn(doc)) {
                if (!seen.has(el)) {
                    seen.add(el);
                    buttons.push(el);
                }
            }
        }
        return buttons;
    }

    function clickAcceptButtons() {
        const targets = collectButtons().filter((el) => {
            try {
                return isAcceptButton(el);
            } catch (e) {
                return false;
            }
        });
        let clicked = 0;
        for (const el of targets) {
            try {
                // An earlier click may have re-rendered the panel.
                if (!el.isConnected) continue;
                el.click();
                clicked++;
            } catch (e) {
                // Counted as not clicked; keep scanning.
            }
        }
        return { found: targets.length, clicked: clicked };
    }

    function describeChatInput() {
        const input = findChatInput();
        if (!input) return { found: false };
        return {
            found: true,
            tagName: input.tagName,
            isLexical: input.hasAttribute('data-lexical-editor'),
            hasIframeDoc: !!input._iframeDoc
        };
    }

    function describeSubmitButton() {
        const button = findSubmitButton();
        if (!button) return { found: false };
        return {
            found: true,
            text: (button.textContent || '').trim(),
            disabled: isDisabled(button),
            tagName: button.tagName
        };
    }

    window[config.namespace] = {
        version: config.version,
        findChatInput: findChatInput,
        injectPrompt: injectPrompt,
        getPromptText: getPromptText,
        findSubmitButton: findSubmitButton,
        submitPrompt: submitPrompt,
        classifyButton: classifyButton,
        isAcceptButton: isAcceptButton,
        clickAcceptButtons: clickAcceptButtons,
        describeChatInput: describeChatInput,
        describeSubmitButton: describeSubmitButton
    };
    return { installed: true, version: config.version };
"""


def helper_config() -> dict:
    return {
        'namespace': Constants.HELPER_NAMESPACE,
        'version': Constants.HELPER_VERSION,
        'iframeId': Constants.AGENT_PANEL_IFRAME_ID,
        'editorSelector': Constants.SELECTOR_LEXICAL_EDITOR,
        'acceptWords': Constants.ACCEPT_VOCABULARY,
        'rejectWords': Constants.REJECT_VOCABULARY,
        'submitWords': Constants.SUBMIT_VOCABULARY,
    }


def build_installer_script() -> str:
    """Expression that (re)installs the helper namespace and reports the version.

    Safe to evaluate any number of times; each run replaces the namespace.
    """
    return f"(function (config) {{{HELPER_BODY}}})({json.dumps(helper_config())})"


def build_call_expression(function_name: str, *args) -> str:
    """Expression calling ``<namespace>.<function_name>(args)`` in the page.

    Arguments are rendered as JSON literals, which is the only quoting the
    text needs to survive the trip. The result is always a plain record:
    ``{value: ...}``, ``{error: message}`` or ``{helperMissing: true}``.
    """
    arg_list = ', '.join(json.dumps(arg) for arg in args)
    namespace = json.dumps(Constants.HELPER_NAMESPACE)
    return f"""
        (function () {{
            const ns = window[{namespace}];
            if (!ns || typeof ns.{function_name} !== 'function') return {{ helperMissing: true }};
            try {{
                return {{ value: ns.{function_name}({arg_list}) }};
            }} catch (e) {{
                return {{ error: String((e && e.message) || e) }};
            }}
        }})()
    """


def build_presence_expression() -> str:
    return f"!!window[{json.dumps(Constants.HELPER_NAMESPACE)}]"
