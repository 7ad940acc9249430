"""MIDI wire constants.

Only the handful of status bytes the control surface understands are listed
here.  Channel messages carry the channel in the low nibble of the status
byte, so the values below are the channel-0 forms:

- `CONTROL_CHANGE = 0xB0`: controller number + 7-bit value
- `PROGRAM_CHANGE = 0xC0`: program number
- `TIMING_CLOCK = 0xF8`: single-byte system-realtime clock tick
- `SYSEX_START = 0xF0`: start of a System Exclusive packet

Normalized CC values are always ``raw / 127`` (0 → 0.0, 127 → 1.0).
"""

# Status bytes

CONTROL_CHANGE = 0xB0
PROGRAM_CHANGE = 0xC0
TIMING_CLOCK = 0xF8
SYSEX_START = 0xF0

STATUS_MASK = 0xF0
CHANNEL_MASK = 0x0F
DATA_MASK = 0x7F

# Ranges

MIDI_CHANNELS = 16
MAX_7BIT_VALUE = 127
