from .device_info import UNKNOWN_SERIAL, get_laptop_serial, read_laptop_serial

__all__ = ["UNKNOWN_SERIAL", "get_laptop_serial", "read_laptop_serial"]
