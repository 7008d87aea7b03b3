"""Chat message templates."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from goldcast.data.snapshot import ValueSnapshot

HELP_TEXT = (
    "Commands:\n"
    "• emas - current Treasury gold rate\n"
    "• subscribe - get a message whenever the rate changes\n"
    "• unsubscribe - stop rate change messages"
)
FETCH_FAILED_TEXT = "⚠️ Could not fetch the realtime rate. Please try again shortly."
SUBSCRIBED_TEXT = "✅ Subscribed. You will get a message whenever the gold rate changes."
UNSUBSCRIBED_TEXT = "👋 Unsubscribed. Send *subscribe* to opt back in."


def format_rupiah(amount: Decimal) -> str:
    """Format using Indonesian grouping, e.g. ``Rp 1.950.000`` or ``Rp 1.234,50``."""
    amount = Decimal(amount)
    negative = amount < 0
    amount = abs(amount)

    if amount == amount.to_integral_value():
        whole, frac = f"{int(amount):,}", ""
    else:
        text = f"{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,.2f}"
        whole, frac = text.split(".")
        frac = "," + frac

    whole = whole.replace(",", ".")
    return f"{'-' if negative else ''}Rp {whole}{frac}"


def render_rate(snapshot: ValueSnapshot) -> str:
    """Render the rate message sent for queries and broadcasts."""
    spread = snapshot.spread
    spread_pct = (spread / snapshot.primary * 100) if snapshot.primary else Decimal("0")
    updated = snapshot.source_updated or snapshot.observed_at.strftime("%Y-%m-%d %H:%M:%S")
    return "\n".join(
        [
            "💰 Treasury Gold Rate (per gram)",
            f"• Buy    : {format_rupiah(snapshot.primary)}",
            f"• Sell   : {format_rupiah(snapshot.secondary)}",
            f"• Spread : {format_rupiah(spread)} ({spread_pct:.2f}%)",
            f"• Update : {updated} (WIB)",
        ]
    )
