"""Device enumerations and name tables.

Numbers are what the device puts on the wire; names are what the device
shows on its screen.
"""

from __future__ import annotations

from enum import IntEnum


class _NamedEnum(IntEnum):
    """IntEnum whose members have a display name and can be looked up by it."""

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()

    @classmethod
    def from_name(cls, name: str) -> "_NamedEnum":
        """Look up a member by display name, case-insensitively.

        Raises:
            ValueError: If ``name`` is not a string or not a known name.
        """
        if not isinstance(name, str):
            raise ValueError(f"{cls.__name__} name must be a string, got {name!r}")
        key = name.strip().lower()
        for member in cls:
            if key == member.label.lower():
                return member
        valid = [m.label for m in cls]
        raise ValueError(f"{cls.__name__} '{name}' is invalid. Valid: {valid}")

    @classmethod
    def describe(cls, number: int) -> str:
        try:
            return cls(number).label
        except ValueError:
            return f"[UNKNOWN {cls.__name__.upper()} {number}]"


class Mode(_NamedEnum):
    """Pulse mode."""

    STANDARD = 0
    POWER = 1
    TWIN = 2
    DUAL = 3


class Waveform(_NamedEnum):
    """Pulse waveform."""

    MONOPHASIC = 0
    BIPHASIC = 1
    HALFSINE = 2
    BIPHASIC_BURST = 3


class CurrentDirection(_NamedEnum):
    """Coil current direction."""

    NORMAL = 0
    REVERSE = 1


class Page(_NamedEnum):
    """Page shown on the device UI.

    The service pages can be reported by the device but not selected.
    """

    MAIN = 1
    TIMING = 2
    TRIGGER = 3
    CONFIGURE = 4
    PROTOCOL = 7
    SERVICE = 13
    SERVICE2 = 17

    @property
    def label(self) -> str:
        return self.name.title()

    @property
    def long_name(self) -> str:
        return PAGE_LONG_NAMES[self]

    @property
    def selectable(self) -> bool:
        return self not in (Page.SERVICE, Page.SERVICE2)

    @classmethod
    def from_name(cls, name: str) -> "Page":
        if isinstance(name, str):
            key = name.strip().lower()
            for page, long_name in PAGE_LONG_NAMES.items():
                if key == long_name.lower():
                    return page
        return super().from_name(name)


PAGE_LONG_NAMES: dict[Page, str] = {
    Page.MAIN: "Main Menu (Main)",
    Page.TIMING: "Timing Menu (Timing)",
    Page.TRIGGER: "Trigger Menu (Trigger)",
    Page.CONFIGURE: "Configuration Menu (Configure)",
    Page.PROTOCOL: "Protocol Menu (Protocol)",
    Page.SERVICE: "Service Mode (Service)",
    Page.SERVICE2: "Service Mode (Service2)",
}

MODEL_NAMES: dict[int, str] = {
    0: "R30",
    1: "X100",
    2: "R30+Option",
    3: "X100+Option",
    4: "R30+Option+Mono",
    5: "MST",
}

# Coil numbers confirmed on at least one device; the bracketed text is a
# longer description than the device screen shows.
COIL_TYPES: dict[int, str] = {
    0: "Unknown",
    56: "Grp5-Coil [Cool-B35 HO]",
    60: "Cool-B65",
    64: "Cool-B65 A/P",
    72: "C-B60",
    81: "MC-125",
    82: "MC-B70",
    86: "D-B80",
}


def model_name(number: int) -> str:
    return MODEL_NAMES.get(number, f"[UNKNOWN MODEL {number}]")


def coil_type_name(number: int) -> str:
    return COIL_TYPES.get(number, f"[UNIDENTIFIED COIL NUMBER {number}]")


def page_name(number: int) -> str:
    try:
        return Page(number).long_name
    except ValueError:
        return f"[UNKNOWN PAGE NUMBER {number}]"
