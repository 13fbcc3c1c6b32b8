"""
SkimGuard - Constants and Magic Numbers

Centralized location for all hardcoded values used throughout the application.
This improves maintainability and makes the codebase self-documenting.
"""

from __future__ import annotations

# =============================================================================
# PHYSICAL INSPECTION WEIGHTS (risk points)
# =============================================================================

WEIGHT_LOOSE_PARTS = 30
WEIGHT_MISMATCHED_MATERIAL = 15
WEIGHT_KEYPAD_OBSTRUCTION = 20
WEIGHT_HIDDEN_CAMERA = 50

# Operator flagged a wireless signal manually, independent of the classifier
WEIGHT_MANUAL_WIRELESS_FLAG = 20


# =============================================================================
# WIRELESS DEVICE WEIGHTS (by detection method)
# =============================================================================

DEVICE_WEIGHT_EXACT = 50      # Known signature
DEVICE_WEIGHT_FUZZY = 35      # Likely variant of a known signature
DEVICE_WEIGHT_HEURISTIC = 15  # Generic/default device name
DEVICE_WEIGHT_MANUAL = 10     # Unverified inventory item


# =============================================================================
# PROXIMITY (RSSI, dBm)
# =============================================================================

# Stronger than this is "very close"
RSSI_NEAR_THRESHOLD = -50
RSSI_NEAR_MULTIPLIER = 1.5

# Weaker than this is "far away"
RSSI_FAR_THRESHOLD = -80
RSSI_FAR_MULTIPLIER = 0.5

# Plausible RSSI range accepted from scanners
MIN_RSSI = -127
MAX_RSSI = 20

# Default proximity alert threshold for the live scan
DEFAULT_RSSI_ALERT_THRESHOLD = -60


# =============================================================================
# ENVIRONMENT MULTIPLIERS
# =============================================================================

ENV_WEIGHT_ATM = 1.5           # Strict: any signal is suspicious
ENV_WEIGHT_FUEL_PUMP = 1.3     # Strict: industrial area
ENV_WEIGHT_RETAIL_POS = 0.8    # Lenient: expect printers/scanners
ENV_WEIGHT_PUBLIC_SPACE = 0.5  # Very lenient: high noise


# =============================================================================
# SCORING
# =============================================================================

MIN_RISK_SCORE = 0
MAX_RISK_SCORE = 100

# Scores strictly above this are suspicious
SUSPICIOUS_THRESHOLD = 25

# Scores strictly above this count as high risk in statistics
HIGH_RISK_THRESHOLD = 70


# =============================================================================
# SIGNAL CONDITIONING (adaptive EMA)
# =============================================================================

SIGNAL_LARGE_JUMP_DB = 10
SIGNAL_MEDIUM_JUMP_DB = 5
SIGNAL_ALPHA_LARGE = 0.7
SIGNAL_ALPHA_MEDIUM = 0.4
SIGNAL_ALPHA_SMALL = 0.1


# =============================================================================
# FUZZY MATCHING
# =============================================================================

# Fuzzy matching only runs when MIN < len(normalized name) < MAX
FUZZY_MIN_NAME_LENGTH = 3
FUZZY_MAX_NAME_LENGTH = 15


# =============================================================================
# ENCRYPTION
# =============================================================================

AES_KEY_BITS = 256
AES_GCM_IV_BYTES = 12


# =============================================================================
# SYNC
# =============================================================================

SYNC_BATCH_LIMIT = 50
SYNC_UPLOAD_PATH = '/detections'


# =============================================================================
# QUEUE LIMITS
# =============================================================================

# Maximum pending wireless observations waiting to be consumed
OBSERVATION_QUEUE_MAX_SIZE = 1000

# Maximum operator notes length
MAX_NOTES_LENGTH = 4000
