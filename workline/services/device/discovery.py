"""
Serial Port Discovery

Picks the port the device is most likely attached to. Rules are tried
in order over all enumerated ports and the first rule with a match wins:

1. Board vendor named in the USB descriptor (manufacturer or vendor id)
2. macOS dynamic modem names (cu.usbmodem*, tty.usbmodem*)
3. Generic serial names (COMx, ttyUSB*, ttyACM*) or a known
   USB-to-serial bridge chip (FTDI, Silicon Labs, CH340, CP210x)
4. Any port with "usb" in its path

No match means the gateway runs in simulation mode.
"""

from typing import Any, Callable, Iterable, Sequence

from serial.tools import list_ports

from workline.common.logging_setup import get_service_logger

logger = get_service_logger("device.discovery")

BOARD_VENDOR_NAMES = ("arduino",)
BOARD_VENDOR_IDS = frozenset({0x2341, 0x2A03})  # Arduino LLC, Arduino SRL

MODEM_PATH_PATTERNS = ("cu.usbmodem", "tty.usbmodem")

SERIAL_PATH_PATTERNS = ("COM", "ttyUSB", "ttyACM")
BRIDGE_MANUFACTURERS = ("FTDI", "Silicon Labs", "CH340", "CP210")
BRIDGE_VENDOR_IDS = frozenset({
    0x0403,  # FTDI
    0x10C4,  # Silicon Labs CP210x
    0x1A86,  # QinHeng CH340
})


def _path(port: Any) -> str:
    return getattr(port, "device", None) or ""


def _manufacturer(port: Any) -> str:
    return getattr(port, "manufacturer", None) or ""


def _is_board_vendor(port: Any) -> bool:
    manufacturer = _manufacturer(port).lower()
    if any(name in manufacturer for name in BOARD_VENDOR_NAMES):
        return True
    return getattr(port, "vid", None) in BOARD_VENDOR_IDS


def _is_dynamic_modem(port: Any) -> bool:
    path = _path(port)
    return any(pattern in path for pattern in MODEM_PATH_PATTERNS)


def _is_generic_serial(port: Any) -> bool:
    path = _path(port)
    if any(pattern in path for pattern in SERIAL_PATH_PATTERNS):
        return True
    manufacturer = _manufacturer(port)
    if any(name in manufacturer for name in BRIDGE_MANUFACTURERS):
        return True
    return getattr(port, "vid", None) in BRIDGE_VENDOR_IDS


def _has_usb_in_path(port: Any) -> bool:
    return "usb" in _path(port).lower()


DISCOVERY_RULES: Sequence[tuple[str, Callable[[Any], bool]]] = (
    ("board vendor", _is_board_vendor),
    ("dynamic modem", _is_dynamic_modem),
    ("generic serial", _is_generic_serial),
    ("usb path", _has_usb_in_path),
)


def select_port(ports: Iterable[Any]) -> tuple[Any, str] | None:
    """
    Apply the discovery rules to enumerated ports.

    Args:
        ports: objects shaped like serial.tools.list_ports ListPortInfo
            (device, manufacturer, vid)

    Returns:
        (port, rule name) for the first match, or None
    """
    candidates = list(ports)
    for rule_name, rule in DISCOVERY_RULES:
        for port in candidates:
            if rule(port):
                return port, rule_name
    return None


def discover_port() -> str | None:
    """Enumerate serial ports and return the device path to open, or None"""
    try:
        ports = list(list_ports.comports())
    except Exception as e:
        logger.error(f"Serial port enumeration failed: {e}")
        return None

    logger.info(f"Available serial ports: {len(ports)}")
    for port in ports:
        logger.info(f"   {_path(port)} - {_manufacturer(port) or 'Unknown'}")

    match = select_port(ports)
    if match is None:
        logger.info("No device port found")
        return None

    port, rule_name = match
    logger.info(
        f"Device port found: {_path(port)} (matched by {rule_name})",
        extra={"port": _path(port), "rule": rule_name},
    )
    return _path(port)
