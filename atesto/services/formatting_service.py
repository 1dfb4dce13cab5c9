"""
Helpers de formatação e validação no padrão brasileiro (moeda, datas, CNPJ, e-mail).
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

EMAIL_REGEX = re.compile(
    r"^(?![_.-])(?!.*[_.-]{2})[a-zA-Z0-9_.-]+(?<![_.-])@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,63}$"
)

_CENTS = Decimal("0.01")
_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d")


def only_digits(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\D", "", str(value))


def parse_brl_amount(value: Any) -> Optional[Decimal]:
    """
    Converte um valor monetário em Decimal com duas casas.

    Aceita "R$ 1.234,56", "1234,56", "1234.56" e números. Retorna None para
    valores vazios ou inválidos.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    else:
        raw = str(value).strip()
        if not raw:
            return None
        negative = raw.startswith("-")
        cleaned = re.sub(r"[^\d,.]", "", raw)
        if not cleaned or not re.search(r"\d", cleaned):
            return None
        if "," in cleaned:
            # Padrão brasileiro: ponto é milhar, vírgula é decimal
            cleaned = cleaned.replace(".", "")
            integer_part, _, decimal_part = cleaned.rpartition(",")
            cleaned = f"{integer_part.replace(',', '')}.{decimal_part}"
        elif cleaned.count(".") > 1 or re.search(r"\.\d{3}$", cleaned):
            cleaned = cleaned.replace(".", "")
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            return None
        if negative:
            number = -number
    if not number.is_finite():
        return None
    return number.quantize(_CENTS)


def format_brl(value: Any) -> str:
    if value in (None, ""):
        return "N/A"
    try:
        number = Decimal(str(value)).quantize(_CENTS)
    except (InvalidOperation, ValueError, TypeError):
        return str(value)
    formatted = format(abs(number), ",.2f")
    formatted = formatted.replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if number < 0 else ""
    return f"{sign}R$ {formatted}"


def parse_issue_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()[:10]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def format_date_br(value: Optional[date]) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")


def mask_cnpj(value: Optional[str]) -> str:
    """Aplica a máscara 00.000.000/0000-00 progressivamente."""
    digits = only_digits(value)[:14]
    if not digits:
        return ""
    masked = re.sub(r"^(\d{2})(\d)", r"\1.\2", digits)
    masked = re.sub(r"^(\d{2})\.(\d{3})(\d)", r"\1.\2.\3", masked)
    masked = re.sub(r"\.(\d{3})(\d)", r".\1/\2", masked)
    masked = re.sub(r"(\d{4})(\d)", r"\1-\2", masked)
    return masked


def mask_project_account(value: Optional[str]) -> str:
    """Conta de projeto: até 7 dígitos, com o último como dígito verificador."""
    digits = only_digits(value)[:7]
    if len(digits) > 4:
        return f"{digits[:-1]}-{digits[-1]}"
    return digits


def is_valid_email(value: Optional[str]) -> bool:
    if not value:
        return False
    return bool(EMAIL_REGEX.match(value.strip()))


def parse_email_list(value: Any) -> List[str]:
    """
    Lista separada por vírgula (ou ponto e vírgula). Levanta ValueError se
    algum endereço for inválido.
    """
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        items = re.split(r"[,;]", str(value))
    emails = []
    for item in items:
        email = item.strip()
        if not email:
            continue
        if not is_valid_email(email):
            raise ValueError(f"E-mail inválido: {email}")
        emails.append(email)
    return emails


def build_cc_list(primary: Optional[str], *groups: Iterable[Optional[str]]) -> List[str]:
    """Junta os grupos de cópia sem duplicatas e sem o destinatário principal."""
    seen = set()
    if primary:
        seen.add(primary.strip().lower())
    result = []
    for group in groups:
        for email in group or ():
            if not email:
                continue
            key = email.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            result.append(email.strip())
    return result
