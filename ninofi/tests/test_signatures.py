from ninofi.core.contracts.signatures import (
    SignatureState,
    apply_signature,
    attach_signatures,
    centered_name_line,
    render_signatures_section,
)


def test_unsigned_line_is_bare_rule():
    assert centered_name_line(None) == "_" * 28


def test_name_is_centered_with_extra_on_right():
    assert centered_name_line("Kunal") == "_" * 11 + "Kunal" + "_" * 12


def test_long_name_keeps_minimum_padding():
    name = "Bartholomew Fitzgerald-Worthington"
    assert centered_name_line(name) == "___" + name + "___"


def test_section_layout():
    state = apply_signature(SignatureState(), "homeowner", "Ana")
    lines = render_signatures_section(state).split("\n")
    assert len(lines) == 11
    assert lines[0] == lines[3] == centered_name_line("Ana")
    assert lines[1] == "Homeowner Signature"
    assert lines[4] == "Printed Name of Homeowner"
    assert lines[6] == lines[9] == "_" * 28
    assert lines[10] == "Printed Name of Contractor"


def test_apply_signature_does_not_mutate():
    state = SignatureState()
    signed = apply_signature(state, "contractor", "Bo")
    assert state.contractor_name is None
    assert signed.contractor_name == "Bo"


def test_attach_signatures():
    doc = attach_signatures("Scope of work.\n\n", SignatureState())
    assert doc.startswith("Scope of work.\n\n**Signatures**\n\n")
    assert doc.endswith("Printed Name of Contractor")
