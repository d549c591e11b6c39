"""
Message rendering for WhatsApp purchase confirmations.

Placeholders are replaced literally and globally in a single pass, so a field
value that itself contains a placeholder is emitted as-is. Anything that looks
like a placeholder but is not one of the four recognised tokens is left
untouched, and nothing is escaped: the output is plain text for a messaging
channel.
"""
import re
from dataclasses import dataclass
from typing import Optional

DEFAULT_CUSTOMER_LABEL = "Cliente"
MEMBER_AREA_PATH = "/inicio"

DEFAULT_MESSAGE_TEMPLATE = (
    "Olá {nome}! 🎉\n\n"
    "Sua compra de \"{produto}\" foi confirmada!\n\n"
    "🔐 Seus dados de acesso:\n"
    "Email: {email}\n"
    "Senha: Sua senha atual\n\n"
    "🔗 Acesse sua área de membros:\n"
    "{link_area_membros}\n\n"
    "Em caso de dúvidas, estamos aqui para ajudar!"
)

PLACEHOLDERS = ("{nome}", "{produto}", "{email}", "{link_area_membros}")

_PLACEHOLDER_RE = re.compile("|".join(re.escape(token) for token in PLACEHOLDERS))


@dataclass(frozen=True)
class MessageFields:
    recipient_name: Optional[str] = None
    product_label: Optional[str] = None
    recipient_email: Optional[str] = None
    area_link: Optional[str] = None


def customer_label(value: Optional[str]) -> str:
    """Fallback label for a missing recipient name or email"""
    value = (value or "").strip()
    return value or DEFAULT_CUSTOMER_LABEL


def render_message(template: Optional[str], fields: MessageFields) -> str:
    """Substitute the recognised placeholders in ``template``"""
    replacements = {
        "{nome}": customer_label(fields.recipient_name),
        "{produto}": fields.product_label or "",
        "{email}": customer_label(fields.recipient_email),
        "{link_area_membros}": fields.area_link or "",
    }
    return _PLACEHOLDER_RE.sub(lambda match: replacements[match.group(0)], template or "")


def member_area_link(origin: Optional[str], default_origin: str) -> str:
    base = (origin or "").strip() or default_origin
    return f"{base.rstrip('/')}{MEMBER_AREA_PATH}"
