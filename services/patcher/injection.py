"""Anchor location and payload injection for generated JavaScript bundles.

Injection points are found with narrow string patterns rather than a parser:
an :class:`AnchorLocator` returns where to insert and which locally scoped
identifiers the surrounding code uses, and an :class:`InjectionTransform`
combines locators, a payload template and an allow-list edit into a pure
``bytes -> bytes`` function.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from importlib import resources
from typing import Mapping, Protocol

from shared.result import Result


_LOGGER = logging.getLogger(__name__)

_INJECTIONS_PACKAGE = "services.patcher"
_INJECTIONS_DIR = ("resources", "injections")

IDENT_MAIN_WINDOW = "main_window"
IDENT_WEB_VIEW = "web_view"
IDENT_ELECTRON = "electron"

PLACEHOLDERS: Mapping[str, str] = {
    IDENT_ELECTRON: "@@ELECTRON@@",
    IDENT_MAIN_WINDOW: "@@MAIN_WINDOW@@",
    IDENT_WEB_VIEW: "@@WEB_VIEW@@",
}

DEFAULT_PAYLOAD_FILES = (
    "extension_loader.js",
    "alarm_polyfill.js",
    "notification_polyfill.js",
    "tabevents_polyfill.js",
)

_IDENT = r"[A-Za-z_$][\w$]*"

WINDOW_READY_PATTERN = re.compile(
    rf"(?<![\w$.])return\b[^;{{}}]*?(?<![\w$])(?P<{IDENT_MAIN_WINDOW}>{_IDENT})\s*\.\s*on\(\s*[\"']resize[\"']"
)
WEB_VIEW_PATTERN = re.compile(
    rf"(?<![\w$.])(?P<{IDENT_WEB_VIEW}>{_IDENT})\s*\.\s*webContents\s*\.\s*on\(\s*[\"']dom-ready[\"']"
)
ELECTRON_ALIAS_PATTERN = re.compile(
    rf"(?<![\w$.])(?P<{IDENT_ELECTRON}>{_IDENT})\s*=\s*require\(\s*[\"']electron[\"']\s*\)"
)

ALLOWED_SCHEMES = '["devtools:", "file:"]'
EXTENDED_SCHEMES = '["devtools:", "file:", "chrome-extension:"]'


@dataclass(frozen=True)
class AnchorMatch:
    """Where an anchor starts and which identifiers it captured."""

    offset: int
    identifiers: Mapping[str, str] = field(default_factory=dict)


class AnchorLocator(Protocol):
    """Strategy for finding an injection point in generated code."""

    def locate(self, content: str) -> Result[AnchorMatch, str]:
        """Return the anchor match or an error message describing the miss."""


@dataclass(frozen=True)
class FixedAnchorLocator:
    """Find a literal substring; identifiers are known ahead of time."""

    needle: str
    identifiers: Mapping[str, str] = field(default_factory=dict)

    def locate(self, content: str) -> Result[AnchorMatch, str]:
        index = content.find(self.needle)
        if index == -1:
            return Result.err(f"anchor {self.needle!r} not found")
        return Result.ok(AnchorMatch(index, dict(self.identifiers)))


@dataclass(frozen=True)
class RegexAnchorLocator:
    """Find a regex whose named groups capture identifiers.

    With ``last=True`` the final match wins, which picks the binding closest
    to a later anchor.
    """

    pattern: re.Pattern[str]
    last: bool = False

    def locate(self, content: str) -> Result[AnchorMatch, str]:
        match: re.Match[str] | None = None
        if self.last:
            for match in self.pattern.finditer(content):
                pass
        else:
            match = self.pattern.search(content)
        if match is None:
            return Result.err(f"pattern {self.pattern.pattern!r} not found")
        identifiers = {name: value for name, value in match.groupdict().items() if value}
        return Result.ok(AnchorMatch(match.start(), identifiers))


def read_payload_file(folder: str, filename: str) -> str:
    resource = resources.files(_INJECTIONS_PACKAGE).joinpath(*_INJECTIONS_DIR, folder, filename)
    return resource.read_text(encoding="utf-8")


def load_payload(folder: str, filenames: tuple[str, ...] = DEFAULT_PAYLOAD_FILES) -> str:
    """Concatenate the payload files of ``folder`` separated by blank lines."""

    return "\n\n".join(read_payload_file(folder, filename) for filename in filenames)


def render_payload(template: str, identifiers: Mapping[str, str]) -> str:
    rendered = template
    for name, token in PLACEHOLDERS.items():
        if name in identifiers:
            rendered = rendered.replace(token, identifiers[name])
    return rendered


@dataclass(frozen=True)
class InjectionTransform:
    """Insert the payload before the window anchor and widen the scheme list.

    The payload insertion and the allow-list replacement are attempted
    independently; callers judge success by comparing bytes.
    """

    payload_folder: str
    window_locator: AnchorLocator
    web_view_locator: AnchorLocator | None = None
    electron_locator: AnchorLocator | None = None
    defaults: Mapping[str, str] = field(default_factory=dict)
    scheme_list: str = ALLOWED_SCHEMES
    scheme_replacement: str = EXTENDED_SCHEMES
    payload_files: tuple[str, ...] = DEFAULT_PAYLOAD_FILES

    def __call__(self, content: bytes) -> bytes:
        text = content.decode("utf-8", errors="surrogateescape")
        text = self.inject(text)
        text = self.extend_allow_list(text)
        return text.encode("utf-8", errors="surrogateescape")

    def inject(self, text: str) -> str:
        anchor = self.window_locator.locate(text)
        if anchor.is_err():
            _LOGGER.warning("Skipping payload injection: %s", anchor.error)
            return text
        match = anchor.unwrap()
        preceding = text[: match.offset]

        identifiers = dict(self.defaults)
        identifiers.update(self._identifiers_from(self.electron_locator, preceding, IDENT_ELECTRON))
        identifiers.update(self._identifiers_from(self.web_view_locator, preceding, IDENT_WEB_VIEW))
        identifiers.update(match.identifiers)

        try:
            template = load_payload(self.payload_folder, self.payload_files)
        except (FileNotFoundError, OSError) as exc:
            _LOGGER.warning("Could not load injection payload %s: %s", self.payload_folder, exc)
            return text
        payload = render_payload(template, identifiers)
        _LOGGER.debug(
            "Injecting payload at offset %s with identifiers %s", match.offset, identifiers
        )
        return f"{preceding}\n{payload}\n{text[match.offset:]}"

    def extend_allow_list(self, text: str) -> str:
        if self.scheme_list not in text:
            _LOGGER.warning("Allowed scheme list %s not found", self.scheme_list)
            return text
        return text.replace(self.scheme_list, self.scheme_replacement, 1)

    def _identifiers_from(
        self, locator: AnchorLocator | None, preceding: str, name: str
    ) -> Mapping[str, str]:
        if locator is None:
            return {}
        identifiers = locator.locate(preceding).map(lambda match: match.identifiers)
        if identifiers.is_err():
            _LOGGER.debug(
                "No %s identifier detected, using default %r", name, self.defaults.get(name)
            )
        return identifiers.unwrap_or({})


def fixed_transform_0_12_55() -> InjectionTransform:
    return InjectionTransform(
        payload_folder="0.12.55",
        window_locator=FixedAnchorLocator(
            'return a(), i(), e.on("resize"', {IDENT_MAIN_WINDOW: "e"}
        ),
        defaults={IDENT_ELECTRON: "ue", IDENT_WEB_VIEW: "r"},
        scheme_list='gX = ["devtools:", "file:"]',
        scheme_replacement='gX = ["devtools:", "file:", "chrome-extension:"]',
    )


def generic_transform(payload_folder: str = "0.12.55") -> InjectionTransform:
    """Transform for unseen versions relying on anchor detection only.

    The web view falls back to ``r`` when no ``dom-ready`` handler precedes
    the window anchor, which is wrong whenever the bundler picked a different
    name.
    """

    return InjectionTransform(
        payload_folder=payload_folder,
        window_locator=RegexAnchorLocator(WINDOW_READY_PATTERN),
        web_view_locator=RegexAnchorLocator(WEB_VIEW_PATTERN, last=True),
        electron_locator=RegexAnchorLocator(ELECTRON_ALIAS_PATTERN, last=True),
        defaults={IDENT_ELECTRON: 'require("electron")', IDENT_WEB_VIEW: "r"},
    )


__all__ = [
    "AnchorLocator",
    "AnchorMatch",
    "FixedAnchorLocator",
    "InjectionTransform",
    "RegexAnchorLocator",
    "fixed_transform_0_12_55",
    "generic_transform",
    "load_payload",
    "render_payload",
]
