"""Device enumerations, name tables, and the device state store."""

from .catalog import (
    COIL_TYPES,
    MODEL_NAMES,
    CurrentDirection,
    Mode,
    Page,
    Waveform,
    coil_type_name,
    model_name,
    page_name,
)
