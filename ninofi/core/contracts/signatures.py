"""Plain-text signature block appended to contract documents."""

from __future__ import annotations

from pydantic import BaseModel

LINE_LENGTH = 28
MIN_PADDING = 3


class SignatureState(BaseModel):
    homeowner_name: str | None = None
    contractor_name: str | None = None


def centered_name_line(name: str | None, total_length: int = LINE_LENGTH, min_padding: int = MIN_PADDING) -> str:
    """Underscore rule with ``name`` centered on it; a bare rule while unsigned."""
    if name is None:
        return "_" * total_length
    available = total_length - len(name)
    if available < 2 * min_padding:
        return "_" * min_padding + name + "_" * min_padding
    left = available // 2
    return "_" * left + name + "_" * (available - left)


def apply_signature(state: SignatureState, role: str, signer_name: str) -> SignatureState:
    if role == "homeowner":
        return state.model_copy(update={"homeowner_name": signer_name})
    return state.model_copy(update={"contractor_name": signer_name})


def render_signatures_section(state: SignatureState) -> str:
    return "\n".join([
        centered_name_line(state.homeowner_name),
        "Homeowner Signature",
        "",
        centered_name_line(state.homeowner_name),
        "Printed Name of Homeowner",
        "",
        centered_name_line(state.contractor_name),
        "Contractor Signature",
        "",
        centered_name_line(state.contractor_name),
        "Printed Name of Contractor",
    ])


def attach_signatures(contract_text: str, state: SignatureState) -> str:
    return contract_text.rstrip() + "\n\n**Signatures**\n\n" + render_signatures_section(state)
