"""
Skimmer Signature Database.

Known wireless signatures of card-skimming hardware: serial/BLE bridge chips
commonly soldered into overlays, magstripe reader boards, names seen in
reported skimming campaigns, and pentest/hacking tools that have no business
sitting next to a payment terminal.
"""

from __future__ import annotations

import re
from typing import NamedTuple


class Signature(NamedTuple):
    """A known device signature: regex pattern, label and risk tier."""
    pattern: str
    label: str
    tier: str  # LOW / MED / HIGH / CRITICAL


# =============================================================================
# Exact Signatures (matched against the raw advertised name)
# =============================================================================

EXACT_SIGNATURES: list[Signature] = [
    # Serial / BLE bridge modules (classic skimmer exfiltration link)
    Signature(r'^HC-?0[5-9]$', 'HC-0x Serial Bluetooth Module', 'HIGH'),
    Signature(r'^linvor$', 'HC-06 (linvor firmware)', 'HIGH'),
    Signature(r'^JDY-?\d{2}$', 'JDY BLE Serial Bridge', 'HIGH'),
    Signature(r'^HM-?1[0-9]$', 'HM-1x BLE Serial Bridge', 'HIGH'),
    Signature(r'^(AT-?09|CC41-?A)$', 'HM-10 Clone BLE Bridge', 'HIGH'),
    Signature(r'^BT-?0[45]$', 'Generic Serial BT Bridge', 'HIGH'),
    Signature(r'^RNBT-[0-9A-F]{4}$', 'Roving Networks RN-42 Module', 'HIGH'),
    Signature(r'^Free2move$', 'Free2move Serial Adapter', 'HIGH'),

    # Magstripe reader boards
    Signature(r'^MSR-?(605|606|206|90)X?$', 'Magstripe Reader/Writer Board', 'CRITICAL'),
    Signature(r'^(MagTek|IDTech)[ _-]?Reader', 'Standalone Magstripe Reader', 'CRITICAL'),

    # Named threats (campaign names and self-describing devices)
    Signature(r'skim', 'Self-Identified Skimmer', 'CRITICAL'),
    Signature(r'^(Shimmer|Shim-?BT)', 'EMV Shimmer Device', 'CRITICAL'),
    Signature(r'^PINPAD[-_ ]?OVL', 'Keypad Overlay Transmitter', 'CRITICAL'),

    # Hacking / pentest tools
    Signature(r'^Flipper\b', 'Flipper Zero', 'HIGH'),
    Signature(r'^Ubertooth', 'Ubertooth One', 'HIGH'),
    Signature(r'^HackRF', 'HackRF SDR', 'HIGH'),
    Signature(r'^pwnagotchi', 'Pwnagotchi', 'MED'),
    Signature(r'^(ESP32|ESP_[0-9A-F]{6})', 'ESP32 Development Board', 'MED'),
    Signature(r'^(Adafruit )?Bluefruit', 'Adafruit Bluefruit Board', 'MED'),
]

_COMPILED_SIGNATURES = [
    (re.compile(sig.pattern, re.IGNORECASE), sig) for sig in EXACT_SIGNATURES
]


# =============================================================================
# Fuzzy Keywords (normalized before comparison)
# =============================================================================

FUZZY_KEYWORDS: list[str] = [
    'HC05', 'HC06', 'HC08', 'linvor',
    'JDY08', 'JDY31', 'HM10', 'AT09', 'CC41A',
    'RNBT', 'free2move',
    'MSR605', 'MSR206',
    'skimmer', 'shimmer',
    'flipper', 'ubertooth', 'pwnagotchi', 'bluefruit',
]


# =============================================================================
# Generic / Default Device Labels
# =============================================================================

GENERIC_DEVICE_NAMES: list[str] = [
    'unnamed',
    'unknown',
    'device',
    'serial',
    'keyboard',
    'mouse',
    'bluetooth',
    'ble',
    'bt',
]


def match_exact_signature(name: str) -> Signature | None:
    """Return the first exact signature matching a raw device name."""
    if not name:
        return None
    for regex, sig in _COMPILED_SIGNATURES:
        if regex.search(name):
            return sig
    return None
