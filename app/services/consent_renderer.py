"""Consent content placeholders and signed document HTML."""

import html
import re
from datetime import datetime

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_]+)\s*\}\}")

# Placeholder name (lowercase) -> organization field
_ALIASES = {
    "organization_name": "name",
    "nombre_organizacion": "name",
    "organization_tax_id": "tax_id",
    "cif_organizacion": "tax_id",
    "organization_address": "address",
    "direccion_organizacion": "address",
    "organization_city": "city",
    "ciudad_organizacion": "city",
    "organization_province": "province",
    "organization_postal_code": "postal_code",
    "organization_email": "email",
    "email_organizacion": "email",
    "organization_phone": "phone",
    "telefono_organizacion": "phone",
    "organization_website": "website",
    "organization_country": "country",
    "organization_full_address": "full_address",
    "direccion_completa": "full_address",
}

ORGANIZATION_SNAPSHOT_FIELDS = (
    "name",
    "tax_id",
    "address",
    "postal_code",
    "city",
    "province",
    "country",
    "email",
    "phone",
    "website",
)

ACCEPTANCE_LABELS = (
    ("terms_accepted", "Acepto los términos y condiciones"),
    ("document_read_understood", "He leído y comprendo el documento"),
    ("medical_treatment_accepted", "Acepto el tratamiento médico descrito"),
    ("marketing_notifications_accepted", "Acepto recibir comunicaciones comerciales"),
)


def organization_snapshot(organization: dict) -> dict[str, str]:
    """Fiscal data kept with a signed consent."""
    snapshot = {field: organization.get(field) or "" for field in ORGANIZATION_SNAPSHOT_FIELDS}
    snapshot["country"] = snapshot["country"] or "España"
    return snapshot


def replace_placeholders(content: str, organization: dict) -> str:
    """
    Fill ``{{ORGANIZATION_*}}`` placeholders with the organization's data.

    Names match case-insensitively and the Spanish aliases are accepted.
    Values are HTML-escaped; unknown placeholders are left untouched.
    """
    values = organization_snapshot(organization)
    values["full_address"] = ", ".join(
        part
        for part in (values["address"], values["city"], values["province"], values["postal_code"])
        if part
    )

    def substitute(match: re.Match) -> str:
        field = _ALIASES.get(match.group(1).lower())
        if field is None:
            return match.group(0)
        return html.escape(values[field])

    return _PLACEHOLDER.sub(substitute, content)


def _signature_src(signature: str) -> str:
    if signature.startswith("data:image/"):
        return signature
    return f"data:image/png;base64,{signature}"


def _format_datetime(value: datetime | None) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value else "-"


def render_signed_document(consent: dict, title: str) -> str:
    """
    Standalone HTML of a signed consent.

    ``consent`` is a ``patient_consents`` row. The content snapshot is trusted
    HTML written by the organization; everything typed by the patient is
    escaped.
    """
    organization = consent.get("organization_data") or {}
    e = html.escape

    acceptances = "".join(
        f"<li>{'&#10003;' if consent.get(field) else '&#10007;'} {label}</li>"
        for field, label in ACCEPTANCE_LABELS
    )
    browser = consent.get("browser_info") or {}
    browser_text = ", ".join(f"{e(str(k))}: {e(str(v))}" for k, v in browser.items()) or "-"

    return f"""<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8">
<title>{e(title)}</title>
<style>
body {{ font-family: Helvetica, Arial, sans-serif; color: #1e293b; max-width: 800px; margin: 2rem auto; }}
header {{ border-bottom: 2px solid #0f766e; margin-bottom: 1.5rem; }}
.signature img {{ max-width: 320px; border: 1px solid #cbd5e1; }}
footer {{ font-size: 0.8rem; color: #64748b; border-top: 1px solid #cbd5e1; margin-top: 2rem; }}
</style>
</head>
<body>
<header>
<h2>{e(organization.get("name", ""))}</h2>
<p>{e(organization.get("tax_id", ""))} &middot; {e(organization.get("address", ""))} {e(organization.get("city", ""))}</p>
</header>
<h1>{e(title)}</h1>
<section class="content">
{consent["consent_content"]}
</section>
<section class="patient">
<h3>Datos del paciente</h3>
<p>Nombre: {e(consent["patient_name"])}</p>
<p>DNI: {e(consent["patient_tax_id"])}</p>
<p>Fecha de firma: {_format_datetime(consent.get("signed_at"))}</p>
</section>
<section class="acceptances">
<h3>Aceptaciones</h3>
<ul>{acceptances}</ul>
</section>
<section class="signature">
<h3>Firma</h3>
<img src="{e(_signature_src(consent["signature_base64"]))}" alt="Firma del paciente">
</section>
<footer>
<p>IP: {e(consent.get("ip_address") or "-")} &middot; Navegador: {e(consent.get("user_agent") or "-")}</p>
<p>Información del dispositivo: {browser_text}</p>
<p>Versión del texto de aceptación: {e(consent.get("acceptance_text_version") or "v1.0")}
{" &middot; REVOCADO el " + _format_datetime(consent.get("revoked_at")) if consent.get("revoked_at") else ""}</p>
</footer>
</body>
</html>
"""
