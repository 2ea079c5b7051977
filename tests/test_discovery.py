"""Tests for serial port discovery."""

from types import SimpleNamespace
from unittest.mock import patch

from workline.services.device import discovery
from workline.services.device.discovery import discover_port, select_port


def port(device, manufacturer=None, vid=None):
    return SimpleNamespace(device=device, manufacturer=manufacturer, vid=vid)


class TestSelectPort:
    """Discovery rules, first match wins."""

    def test_board_vendor_by_manufacturer(self):
        ports = [
            port("/dev/ttyUSB0", "FTDI"),
            port("/dev/ttyACM0", "Arduino (www.arduino.cc)"),
        ]
        selected, rule = select_port(ports)
        assert selected.device == "/dev/ttyACM0"
        assert rule == "board vendor"

    def test_board_vendor_by_vid(self):
        selected, rule = select_port([port("/dev/ttyS1"), port("/dev/ttyS9", vid=0x2341)])
        assert selected.device == "/dev/ttyS9"
        assert rule == "board vendor"

    def test_dynamic_modem_before_generic(self):
        ports = [port("COM3"), port("/dev/cu.usbmodem14101")]
        selected, rule = select_port(ports)
        assert selected.device == "/dev/cu.usbmodem14101"
        assert rule == "dynamic modem"

    def test_generic_serial_name(self):
        selected, rule = select_port([port("/dev/ttyS0"), port("COM4")])
        assert selected.device == "COM4"
        assert rule == "generic serial"

    def test_bridge_chip(self):
        selected, rule = select_port([port("/dev/ttyS0"), port("/dev/serial1", "Silicon Labs")])
        assert selected.device == "/dev/serial1"
        assert rule == "generic serial"

        selected, _ = select_port([port("/dev/serial2", vid=0x1A86)])
        assert selected.device == "/dev/serial2"

    def test_usb_path_fallback(self):
        selected, rule = select_port([port("/dev/ttyS0"), port("/dev/cu.USB-Serial")])
        assert selected.device == "/dev/cu.USB-Serial"
        assert rule == "usb path"

    def test_no_match(self):
        assert select_port([port("/dev/ttyS0"), port("/dev/ttyS1")]) is None
        assert select_port([]) is None


class TestDiscoverPort:
    """Enumeration via pyserial."""

    def test_returns_device_path(self):
        with patch.object(discovery.list_ports, "comports",
                          return_value=[port("/dev/ttyACM0", "Arduino LLC")]):
            assert discover_port() == "/dev/ttyACM0"

    def test_no_ports(self):
        with patch.object(discovery.list_ports, "comports", return_value=[]):
            assert discover_port() is None

    def test_enumeration_failure_is_no_match(self):
        with patch.object(discovery.list_ports, "comports", side_effect=OSError("boom")):
            assert discover_port() is None
