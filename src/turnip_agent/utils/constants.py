"""Shared constants for PumpPortal and pump.fun integration."""

PUMPPORTAL_API_URL = "https://pumpportal.fun/api"
PUMP_FUN_URL = "https://pump.fun/"

# Fixed priority fee (SOL) attached to every trade-local request.
PRIORITY_FEE_SOL = 0.0005
DEFAULT_POOL = "pump"
DEFAULT_SLIPPAGE_PCT = 10.0
DEFAULT_DEV_BUY_SOL = 0.0

IMAGE_FILENAME = "image.png"
IMAGE_CONTENT_TYPE = "image/png"

__all__ = [
    "DEFAULT_DEV_BUY_SOL",
    "DEFAULT_POOL",
    "DEFAULT_SLIPPAGE_PCT",
    "IMAGE_CONTENT_TYPE",
    "IMAGE_FILENAME",
    "PRIORITY_FEE_SOL",
    "PUMPPORTAL_API_URL",
    "PUMP_FUN_URL",
]
