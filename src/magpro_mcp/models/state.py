"""Last-known device state and the pulse log."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..protocol.parser import AmplitudeUpdate, CoilTemperature, Message, PulseEvent
from .catalog import Mode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PulseRecord:
    """One observed magnetic pulse."""

    timestamp: datetime
    amplitude: int
    didt: int
    mode: int
    waveform: int

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(timespec="milliseconds"),
            "amplitude": self.amplitude,
            "didt": self.didt,
            "mode": Mode.describe(self.mode),
            "waveform": self.waveform,
        }


@dataclass
class DeviceState:
    """State reconstructed from device messages.

    Not thread-safe; the controller serializes access. The pulse list only
    ever grows.

    In Twin and Dual modes the device reports a trigger either as one pulse
    event carrying both di/dt values or as two events. A first event whose
    second di/dt is zero is taken to mean the second pulse follows in its
    own event, and that event's first di/dt field is then read as the
    second pulse. A second pulse that really has zero di/dt is therefore
    misread; the amplitudes cannot resolve this because the device does not
    necessarily report them before the pulse.
    """

    amplitudes: tuple[int, int] = (0, 0)
    coil_temperature: int = 0
    coil_type: int = 0
    pending_second_pulse: bool = False
    pulses: list[PulseRecord] = field(default_factory=list)

    def apply(self, message: Message, timestamp: datetime) -> list[PulseRecord]:
        """Fold a decoded message into the state.

        Returns:
            The pulse records appended by this message.
        """
        if isinstance(message, AmplitudeUpdate):
            self.amplitudes = (message.amplitude_a, message.amplitude_b)
        elif isinstance(message, CoilTemperature):
            self.coil_temperature = message.temperature
            self.coil_type = message.coil_type
        elif isinstance(message, PulseEvent):
            return self._apply_pulse(message, timestamp)
        return []

    def _apply_pulse(self, event: PulseEvent, timestamp: datetime) -> list[PulseRecord]:
        amplitude_a, amplitude_b = self.amplitudes
        paired = event.mode in (Mode.TWIN, Mode.DUAL)

        if not paired:
            new = [self._record(timestamp, amplitude_a, event.didt_a, event)]
        elif self.pending_second_pulse:
            self.pending_second_pulse = False
            new = [self._record(timestamp, amplitude_b, event.didt_a, event)]
        else:
            new = [self._record(timestamp, amplitude_a, event.didt_a, event)]
            if event.didt_b == 0:
                self.pending_second_pulse = True
            else:
                new.append(self._record(timestamp, amplitude_b, event.didt_b, event))

        self.pulses.extend(new)
        logger.debug("Recorded %d pulse(s), %d total", len(new), len(self.pulses))
        return new

    @staticmethod
    def _record(timestamp: datetime, amplitude: int, didt: int, event: PulseEvent) -> PulseRecord:
        return PulseRecord(
            timestamp=timestamp,
            amplitude=amplitude,
            didt=didt,
            mode=event.mode,
            waveform=event.waveform,
        )
