"""
Formatadores de moeda, datas e percentuais no padrão pt-BR
"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Union
import re

CURRENCY_SYMBOLS = {
    "BRL": "R$",
    "USD": "US$",
    "EUR": "€",
}


def format_currency(value: float, currency: str = "BRL") -> str:
    """
    Formata valor monetário no padrão brasileiro

    Exemplo: 1234.5 -> "R$ 1.234,50", -10 -> "-R$ 10,00"
    """
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    sign = "-" if value < 0 else ""
    # Agrupa com vírgula/ponto no padrão en e troca os separadores
    grouped = f"{abs(value):,.2f}"
    grouped = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}{symbol} {grouped}"


def parse_currency(text: str) -> float:
    """
    Converte texto monetário pt-BR em float

    Aceita "R$ 1.234,56", "-R$ 10,00", "1234,56" e "1.234"
    """
    cleaned = text.strip()
    negative = cleaned.startswith("-") or (cleaned.startswith("(") and cleaned.endswith(")"))
    cleaned = re.sub(r"[^\d,.]", "", cleaned)
    if not cleaned or not re.search(r"\d", cleaned):
        raise ValueError(f"Valor monetário inválido: {text!r}")

    cleaned = cleaned.replace(".", "").replace(",", ".")
    try:
        value = float(cleaned)
    except ValueError:
        raise ValueError(f"Valor monetário inválido: {text!r}")
    return -value if negative else value


def format_date(value: Union[date, datetime, str]) -> str:
    """Formata data como dd/MM/yyyy"""
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return value.strftime("%d/%m/%Y")


def format_day_label(value: Union[date, datetime]) -> str:
    """Formata data como dd/MM (rótulo de gráficos diários)"""
    return value.strftime("%d/%m")


def format_percentage(value: float) -> str:
    return f"{round_half_up(value)}%"


def month_key(value: Union[date, datetime]) -> str:
    """Chave mês/ano no formato YYYY-MM usada pelos orçamentos"""
    return value.strftime("%Y-%m")


def round_half_up(value: Union[float, Decimal]) -> int:
    """Arredonda para o inteiro mais próximo, com .5 para longe de zero"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
