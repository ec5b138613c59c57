from automation_engine.core.variables import (
    MISSING, extract_variables, get_path, render, resolve_params
)


CONTEXT = {
    "payload": {
        "clientId": 7,
        "client": {"name": "Ana", "phones": ["+34 600", "+34 611"]},
        "paid": True,
        "notes": None,
    },
    "email": {"status": "sent"},
}


def test_get_path():
    assert get_path(CONTEXT, "payload.client.name") == "Ana"
    assert get_path(CONTEXT, "payload.client.phones.1") == "+34 611"
    assert get_path(CONTEXT, "payload.client.phones.5") is MISSING
    assert get_path(CONTEXT, "payload.nope") is MISSING
    assert get_path(CONTEXT, "payload.clientId.deeper") is MISSING
    assert get_path(CONTEXT, "payload.notes") is None


def test_lone_placeholder_keeps_type():
    assert render("{{payload.clientId}}", CONTEXT) == 7
    assert render("{{ payload.client }}", CONTEXT) == CONTEXT["payload"]["client"]


def test_embedded_placeholders_are_stringified():
    assert render("Client #{{payload.clientId}}: {{payload.client.name}}", CONTEXT) == "Client #7: Ana"
    assert render("paid={{payload.paid}} notes={{payload.notes}}", CONTEXT) == "paid=true notes="
    assert render("phones {{payload.client.phones}}", CONTEXT) == 'phones ["+34 600", "+34 611"]'


def test_unresolved_placeholder_is_left_alone():
    assert render("Hi {{payload.missing}}", CONTEXT) == "Hi {{payload.missing}}"
    assert render("{{payload.missing}}", CONTEXT) == "{{payload.missing}}"


def test_resolve_params_walks_nested_values():
    params = {
        "to": "{{payload.client.name}}",
        "lines": ["{{email.status}}", 3],
        "meta": {"id": "{{payload.clientId}}"},
    }

    resolved = resolve_params(params, CONTEXT)

    assert resolved == {"to": "Ana", "lines": ["sent", 3], "meta": {"id": 7}}
    assert params["to"] == "{{payload.client.name}}"


def test_extract_variables():
    template = "{{a.b}} and {{ c }} and {{a.b}}"

    assert extract_variables(template) == ["a.b", "c"]
