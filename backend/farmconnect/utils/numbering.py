"""Invoice number generation.

Format tokens:
  {date}       → YYYYMMDD (UTC)
  {seq:N}      → zero-padded sequence number, N digits, resets daily

Default format:
  invoice:   INV-{date}-{seq:4}
"""

import re
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.models.payment import Invoice

INVOICE_FORMAT = "INV-{date}-{seq:4}"


def _build_prefix(fmt: str, today_str: str) -> str:
    """Everything before {seq:N}, used to count today's numbers."""
    prefix = fmt.replace("{date}", today_str)
    return re.sub(r"\{seq:\d+\}.*$", "", prefix)


def format_code(fmt: str, today_str: str, seq_num: int) -> str:
    seq_match = re.search(r"\{seq:(\d+)\}", fmt)
    seq_width = int(seq_match.group(1)) if seq_match else 3
    code = fmt.replace("{date}", today_str)
    return re.sub(r"\{seq:\d+\}", f"{seq_num:0{seq_width}d}", code)


async def generate_invoice_number(
    db: AsyncSession,
    issued_at: datetime | None = None,
    fmt: str = INVOICE_FORMAT,
) -> str:
    """Generate the next invoice number for the issue date.

    Returns:
        Generated code string, e.g. "INV-20261017-0003"
    """
    today_str = (issued_at or datetime.utcnow()).strftime("%Y%m%d")
    prefix = _build_prefix(fmt, today_str)

    result = await db.execute(
        select(func.count(Invoice.id)).where(Invoice.invoice_number.like(f"{prefix}%"))
    )
    count = result.scalar() or 0
    return format_code(fmt, today_str, count + 1)
