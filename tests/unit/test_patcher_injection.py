from __future__ import annotations

from services.patcher.injection import (
    ELECTRON_ALIAS_PATTERN,
    EXTENDED_SCHEMES,
    FixedAnchorLocator,
    InjectionTransform,
    RegexAnchorLocator,
    WINDOW_READY_PATTERN,
    fixed_transform_0_12_55,
    generic_transform,
    load_payload,
    render_payload,
)
from tests.unit.patcher_test_utils import WINDOW_JS

_GENERIC_JS = (
    'const Qe = require("electron");\n'
    'const schemes = ["devtools:", "file:"];\n'
    "function boot() {\n"
    '  const w = new Qe.BrowserWindow({}); n.webContents.on("dom-ready", () => {});\n'
    '  return s(), t(), w.on("resize", () => {}), w;\n'
    "}\n"
)


def test_payload_resources_are_bundled() -> None:
    payload = load_payload("0.12.55")

    assert "@@MAIN_WINDOW@@" in payload
    assert "alarms" in payload


def test_render_payload_substitutes_known_placeholders_only() -> None:
    template = "a=@@ELECTRON@@; b=@@MAIN_WINDOW@@; c=@@WEB_VIEW@@"

    assert render_payload(template, {"electron": "ue", "main_window": "e"}) == (
        "a=ue; b=e; c=@@WEB_VIEW@@"
    )


def test_fixed_transform_inserts_payload_before_anchor() -> None:
    patched = fixed_transform_0_12_55()(WINDOW_JS.encode("utf-8")).decode("utf-8")

    payload_start = patched.index("const CUTelectron = ue;")
    anchor = patched.index('return a(), i(), e.on("resize"')
    assert payload_start < anchor
    assert "const CUTmainWindow = e;" in patched
    assert "const CUTwebView = r;" in patched
    assert "gX = " + EXTENDED_SCHEMES in patched
    assert "@@" not in patched


def test_fixed_transform_is_deterministic() -> None:
    transform = fixed_transform_0_12_55()
    source = WINDOW_JS.encode("utf-8")

    assert transform(source) == transform(source)


def test_transform_leaves_unrelated_content_unchanged() -> None:
    content = b"module.exports = function () { return 1; };"

    assert fixed_transform_0_12_55()(content) == content
    assert generic_transform()(content) == content


def test_allow_list_is_replaced_once() -> None:
    transform = InjectionTransform(
        payload_folder="0.12.55",
        window_locator=FixedAnchorLocator("never-present"),
    )
    text = 'x = ["devtools:", "file:"]; y = ["devtools:", "file:"];'

    result = transform(text.encode("utf-8")).decode("utf-8")

    assert result.count(EXTENDED_SCHEMES) == 1
    assert result.endswith('y = ["devtools:", "file:"];')


def test_generic_transform_detects_local_identifiers() -> None:
    patched = generic_transform()(_GENERIC_JS.encode("utf-8")).decode("utf-8")

    assert "const CUTelectron = Qe;" in patched
    assert "const CUTmainWindow = w;" in patched
    assert "const CUTwebView = n;" in patched
    assert patched.index("const CUTmainWindow") < patched.index('return s(), t(), w.on("resize"')


def test_generic_transform_falls_back_to_defaults() -> None:
    source = 'function f() { return g(), win.on("resize", h); }'

    patched = generic_transform()(source.encode("utf-8")).decode("utf-8")

    assert 'const CUTelectron = require("electron");' in patched
    assert "const CUTwebView = r;" in patched
    assert "const CUTmainWindow = win;" in patched


def test_window_pattern_ignores_identifiers_containing_return() -> None:
    assert WINDOW_READY_PATTERN.search('noreturn(), x.on("resize")') is None
    match = WINDOW_READY_PATTERN.search('return x.on("resize")')
    assert match is not None and match.group("main_window") == "x"


def test_regex_locator_can_pick_last_binding() -> None:
    content = 'a = require("electron"); b = require("electron");'

    first = RegexAnchorLocator(ELECTRON_ALIAS_PATTERN).locate(content).unwrap()
    last = RegexAnchorLocator(ELECTRON_ALIAS_PATTERN, last=True).locate(content).unwrap()

    assert first.identifiers == {"electron": "a"}
    assert last.identifiers == {"electron": "b"}


def test_locator_miss_is_reported_as_error() -> None:
    result = FixedAnchorLocator("missing").locate("content")

    assert result.is_err()
    assert "missing" in str(result.error)
