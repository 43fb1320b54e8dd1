"""Time expressions for animated filter parameters.

Builds the piecewise functions of time that FFmpeg evaluates per frame:
fade in/out alpha curves, slide interpolation, pulsing opacity/size and
enable windows. Functions return *unescaped* expressions; graph-level
escaping happens once when the filter graph is serialized.

All numeric literals go through fmt() so every expression uses the same
fixed 3-decimal rendering regardless of locale or float repr.

Usage:
    from reelrender.render.expressions import fade_alpha

    alpha = fade_alpha(1.0, 1.3, 4.7, 5.0)
    # if(lt(t,1.000),0,if(lt(t,1.300),(t-1.000)/0.300,if(lt(t,4.700),1,...)))

drawtext/overlay evaluate time as ``t``; geq uses ``T``. Every builder takes
a ``var`` argument for that reason.
"""

DECIMALS = 3


def fmt(value: float) -> str:
    """Render a number with fixed precision for use inside an expression."""
    text = f"{float(value):.{DECIMALS}f}"
    # -0.000 and 0.000 must render identically
    if text.startswith("-") and float(text) == 0:
        return text[1:]
    return text


def enable_between(start: float, end: float, var: str = "t") -> str:
    """Build an enable window expression for [start, end]."""
    return f"between({var},{fmt(start)},{fmt(end)})"


def fade_alpha(
    fade_in_start: float,
    fade_in_end: float,
    fade_out_start: float,
    fade_out_end: float,
    var: str = "t",
) -> str:
    """Build an alpha curve: 0, ramp up, hold 1, ramp down, 0.

    A zero-length fade window degenerates to a step, so there is never a
    division by zero in the generated expression.

    Args:
        fade_in_start: Time the fade-in begins (alpha 0 before this)
        fade_in_end: Time the fade-in completes (alpha 1 from here)
        fade_out_start: Time the fade-out begins
        fade_out_end: Time the fade-out completes (alpha 0 after this)
        var: Time variable name of the consuming filter

    Returns:
        Expression evaluating to a value in [0, 1]
    """
    fade_in = fade_in_end - fade_in_start
    fade_out = fade_out_end - fade_out_start

    # Innermost branch first: after the fade-in, hold then fade out
    if fade_out > 0:
        tail = (
            f"if(lt({var},{fmt(fade_out_end)}),"
            f"1-({var}-{fmt(fade_out_start)})/{fmt(fade_out)},0)"
        )
    else:
        tail = "0"
    hold = f"if(lt({var},{fmt(fade_out_start)}),1,{tail})"

    if fade_in > 0:
        body = (
            f"if(lt({var},{fmt(fade_in_end)}),"
            f"({var}-{fmt(fade_in_start)})/{fmt(fade_in)},{hold})"
        )
    else:
        body = hold

    return f"if(lt({var},{fmt(fade_in_start)}),0,{body})"


def slide_position(
    final_value: float,
    start_offset: float,
    anim_start: float,
    anim_end: float,
    var: str = "t",
) -> str:
    """Build a linear slide from final_value + start_offset to final_value.

    The position is clamped to the start value before anim_start and to the
    final value after anim_end.
    """
    start_value = final_value + start_offset
    duration = anim_end - anim_start

    if duration <= 0:
        return f"if(lt({var},{fmt(anim_start)}),{fmt(start_value)},{fmt(final_value)})"

    return (
        f"if(lt({var},{fmt(anim_start)}),{fmt(start_value)},"
        f"if(lt({var},{fmt(anim_end)}),"
        f"{fmt(start_value)}+({fmt(final_value)}-{fmt(start_value)})"
        f"*(({var}-{fmt(anim_start)})/{fmt(duration)}),"
        f"{fmt(final_value)}))"
    )


def pulse_period(total_duration: float, pulse_count: int) -> float:
    """Length of one pulse; pulse_count is clamped to at least 1."""
    count = max(1, int(pulse_count))
    return total_duration / count


def pulse(
    period: float,
    phase_start: float,
    phase_end: float,
    low: float,
    high: float,
    var: str = "t",
) -> str:
    """Build a pulsing value: low + (high-low)*|sin(pi*(t-start)/period)|.

    Evaluates to 0 outside [phase_start, phase_end].

    Raises:
        ValueError: If period is not positive
    """
    if period <= 0:
        raise ValueError(f"Pulse period must be positive, got {period}")

    wave = f"abs(sin(PI*({var}-{fmt(phase_start)})/{fmt(period)}))"
    return (
        f"if(between({var},{fmt(phase_start)},{fmt(phase_end)}),"
        f"{fmt(low)}+{fmt(high - low)}*{wave},0)"
    )
