"""
Concrete strategy chains for the Strudel editor.

Each chain lists its tactics from the most direct integration (the editor's
own update API or a page global) down to raw DOM writes and simulated
keystrokes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from strudel_bridge.agent.strategies import Strategy, StrategyChain
from strudel_bridge.agent.surface import EditorSurface

# =============================================================================
# apply: replace the editor content
# =============================================================================

CODEMIRROR_DISPATCH = """
([selector, code]) => {
    const editor = selector ? document.querySelector(selector) : null;
    const view = (editor && editor.cmView && (editor.cmView.view || editor.cmView))
        || window.cm || window.editor;
    if (!view || typeof view.dispatch !== 'function' || !view.state) return false;
    view.dispatch({ changes: { from: 0, to: view.state.doc.length, insert: code } });
    return true;
}
"""

CONTENT_EDITABLE_EVENTS = """
([selector, code]) => {
    const root = selector ? document.querySelector(selector) : document;
    const content = root && root.querySelector('.cm-content');
    if (!content) return false;
    content.textContent = code;
    for (const name of ['input', 'change', 'keyup']) {
        content.dispatchEvent(new Event(name, { bubbles: true }));
    }
    return true;
}
"""

EXEC_COMMAND_INSERT = """
([selector, code]) => {
    const editor = selector ? document.querySelector(selector) : null;
    if (!editor || typeof document.execCommand !== 'function') return false;
    editor.click();
    if (editor.focus) editor.focus();
    document.execCommand('selectAll');
    return document.execCommand('insertText', false, code);
}
"""

CODEMIRROR5_SET_VALUE = """
([selector, code]) => {
    const editor = selector ? document.querySelector(selector) : null;
    if (!editor || !editor.CodeMirror) return false;
    editor.CodeMirror.setValue(code);
    return true;
}
"""

TEXTAREA_SET_VALUE = """
([selector, code]) => {
    const editor = selector ? document.querySelector(selector) : null;
    if (!editor) return false;
    const textarea = editor.querySelector('textarea') || editor;
    if (textarea.value === undefined) return false;
    textarea.value = code;
    textarea.dispatchEvent(new Event('input', { bubbles: true }));
    textarea.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}
"""

# =============================================================================
# evaluate: run the current content
# =============================================================================

GLOBAL_EVAL_FUNCTION = """
(code) => {
    for (const name of ['evalCode', 'evaluate', 'playPattern', 'runCode']) {
        if (typeof window[name] === 'function') {
            window[name](code);
            return true;
        }
    }
    return false;
}
"""

PLAY_BUTTON = """
() => {
    const selectors = [
        'button[title*="play"]',
        'button[aria-label*="play"]',
        'button[title*="eval"]',
        'button[aria-label*="eval"]',
        'button:has(svg[data-icon*="play"])',
        'button:has([data-icon*="play"])',
        '.play-button',
        '.eval-button',
    ];
    for (const selector of selectors) {
        try {
            const button = document.querySelector(selector);
            if (button && !button.disabled) {
                button.click();
                return true;
            }
        } catch (e) {
            // :has() is not supported everywhere
        }
    }
    return false;
}
"""

FOCUS_EDITOR = """
(selector) => {
    const editor = selector ? document.querySelector(selector) : null;
    if (!editor) return false;
    editor.click();
    const content = editor.querySelector('.cm-content') || editor;
    if (content.focus) content.focus();
    return true;
}
"""

EVALUATE_SHORTCUT = "Control+Enter"

# =============================================================================
# stop: halt playback
# =============================================================================

GLOBAL_STOP_FUNCTION = """
() => {
    for (const name of ['hush', 'stop', 'strudelHush', 'stopAll']) {
        if (typeof window[name] === 'function') {
            window[name]();
            return true;
        }
    }
    return false;
}
"""

STOP_BUTTON = """
() => {
    const selectors = [
        'button[title*="stop"]',
        'button[aria-label*="stop"]',
        'button:has(svg[data-icon*="stop"])',
        '.stop-button',
    ];
    for (const selector of selectors) {
        try {
            const button = document.querySelector(selector);
            if (button) {
                button.click();
                return true;
            }
        } catch (e) {
            // :has() is not supported everywhere
        }
    }
    return false;
}
"""

# =============================================================================
# read: snapshot of the current content
# =============================================================================

CODEMIRROR_STATE = """
(selector) => {
    const editor = selector ? document.querySelector(selector) : null;
    const view = (editor && editor.cmView && (editor.cmView.view || editor.cmView))
        || window.cm || window.editor;
    return view && view.state ? view.state.doc.toString() : null;
}
"""

CONTENT_TEXT = """
(selector) => {
    const editor = selector ? document.querySelector(selector) : null;
    const content = editor && editor.querySelector('.cm-content');
    return content ? content.textContent : null;
}
"""

CODEMIRROR5_GET_VALUE = """
(selector) => {
    const editor = selector ? document.querySelector(selector) : null;
    return editor && editor.CodeMirror ? editor.CodeMirror.getValue() : null;
}
"""

TEXTAREA_GET_VALUE = """
(selector) => {
    const editor = selector ? document.querySelector(selector) : null;
    if (!editor) return null;
    const textarea = editor.querySelector('textarea') || editor;
    return textarea.value !== undefined ? textarea.value : null;
}
"""


@dataclass
class EditorChains:
    """The four chains an agent runs against its surface."""
    apply: StrategyChain
    evaluate: StrategyChain
    stop: StrategyChain
    read: StrategyChain


def _with_editor(surface: EditorSurface, script: str) -> Callable[[Any], Awaitable[Any]]:
    async def attempt(code: Any) -> Any:
        return await surface.evaluate(script, [surface.editor_selector, code])
    return attempt


def _selector_only(surface: EditorSurface, script: str) -> Callable[[Any], Awaitable[Any]]:
    async def attempt(_: Any) -> Any:
        return await surface.evaluate(script, surface.editor_selector)
    return attempt


def _page_script(surface: EditorSurface, script: str, pass_payload: bool = False) -> Callable[[Any], Awaitable[Any]]:
    async def attempt(payload: Any) -> Any:
        return await surface.evaluate(script, payload if pass_payload else None)
    return attempt


def _keyboard_shortcut(surface: EditorSurface, keys: str) -> Callable[[Any], Awaitable[Any]]:
    async def attempt(_: Any) -> bool:
        await surface.evaluate(FOCUS_EDITOR, surface.editor_selector)
        await surface.press(keys)
        return True
    return attempt


def build_apply_chain(surface: EditorSurface) -> StrategyChain:
    return StrategyChain("apply", [
        Strategy("codemirror_dispatch", _with_editor(surface, CODEMIRROR_DISPATCH)),
        Strategy("content_editable_events", _with_editor(surface, CONTENT_EDITABLE_EVENTS)),
        Strategy("exec_command_insert", _with_editor(surface, EXEC_COMMAND_INSERT)),
        Strategy("codemirror5_set_value", _with_editor(surface, CODEMIRROR5_SET_VALUE)),
        Strategy("textarea_value", _with_editor(surface, TEXTAREA_SET_VALUE)),
    ])


def build_evaluate_chain(surface: EditorSurface) -> StrategyChain:
    return StrategyChain("evaluate", [
        Strategy("global_eval_function", _page_script(surface, GLOBAL_EVAL_FUNCTION, pass_payload=True)),
        Strategy("play_button", _page_script(surface, PLAY_BUTTON)),
        Strategy("keyboard_shortcut", _keyboard_shortcut(surface, EVALUATE_SHORTCUT)),
    ])


def build_stop_chain(surface: EditorSurface) -> StrategyChain:
    return StrategyChain("stop", [
        Strategy("global_stop_function", _page_script(surface, GLOBAL_STOP_FUNCTION)),
        Strategy("stop_button", _page_script(surface, STOP_BUTTON)),
    ])


def build_read_chain(surface: EditorSurface) -> StrategyChain:
    return StrategyChain(
        "read",
        [
            Strategy("codemirror_state", _selector_only(surface, CODEMIRROR_STATE)),
            Strategy("content_text", _selector_only(surface, CONTENT_TEXT)),
            Strategy("codemirror5_get_value", _selector_only(surface, CODEMIRROR5_GET_VALUE)),
            Strategy("textarea_value", _selector_only(surface, TEXTAREA_GET_VALUE)),
        ],
        accept=lambda value: value is not None,
    )


def build_editor_chains(surface: EditorSurface) -> EditorChains:
    return EditorChains(
        apply=build_apply_chain(surface),
        evaluate=build_evaluate_chain(surface),
        stop=build_stop_chain(surface),
        read=build_read_chain(surface),
    )
