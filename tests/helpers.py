"""
Row builders shared by the test modules.
"""

from collections import namedtuple
from typing import Any, Dict

CallRow = namedtuple('CallRow', ['duration', 'user_phone_number', 'call_successfully_completed'])


def make_record(duration: Any, phone: Any = "555", success: Any = True) -> Dict[str, Any]:
    """
    Build a row shaped like the driver's dict_factory output.

    Args:
        duration: Value of the duration column
        phone: Value of the user_phone_number column
        success: Value of the call_successfully_completed column

    Returns:
        Dict keyed by column name
    """
    return {
        'duration': duration,
        'user_phone_number': phone,
        'call_successfully_completed': success,
    }
