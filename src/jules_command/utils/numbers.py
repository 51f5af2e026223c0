"""Number formatting for human-readable reasons."""


def format_number(value: float) -> str:
    """Render a number the way it reads in a reason string.

    Whole floats drop their fractional part (``2.0`` -> ``"2"``), everything
    else uses ``str`` (``0.3`` -> ``"0.3"``).
    """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
