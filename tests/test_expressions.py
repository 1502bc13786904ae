import pytest

from expressions import (
    InvalidExpressionError,
    Reference,
    find_invalid_expressions,
    find_references,
    interpolation_parts,
    is_interpolated,
    parse_reference,
    unescape,
)


def test_parse_reference_defaults_to_id():
    assert parse_reference("uploads_bucket") == Reference("uploads_bucket", "id")
    assert parse_reference(" upload_api.execution_arn ") == Reference("upload_api", "execution_arn")


def test_parse_reference_rejects_calls():
    with pytest.raises(InvalidExpressionError):
        parse_reference("timestamp()")


def test_interpolation_parts_keeps_literals_in_order():
    parts = interpolation_parts("${upload_api.execution_arn}/*/*")
    assert parts == [Reference("upload_api", "execution_arn"), "/*/*"]

    parts = interpolation_parts("integrations/${upload_integration.id}")
    assert parts == ["integrations/", Reference("upload_integration", "id")]


def test_find_references_walks_nested_values():
    args = {
        "role": "ref:lambda_exec.arn",
        "environment": {"variables": {"BUCKET": "ref:uploads_bucket", "REGION": "lookup:region"}},
        "statements": [{"Resource": "${uploads_bucket.arn}/*"}],
        "arn_literal": "arn:aws:iam::aws:policy/ReadOnlyAccess",
    }
    refs = find_references(args)
    assert Reference("lambda_exec", "arn") in refs
    assert Reference("uploads_bucket", "id") in refs
    assert Reference("uploads_bucket", "arn") in refs
    assert len(refs) == 3


def test_runtime_call_is_an_invalid_expression():
    problems = find_invalid_expressions({"variables": {"STARTED_AT": "${timestamp()}"}})
    assert len(problems) == 1
    assert "timestamp()" in problems[0]


def test_grammar_errors_are_reported():
    assert find_invalid_expressions("ref:not valid") == ["'ref:not valid' is not a valid reference"]
    assert find_invalid_expressions("lookup:availability_zone")
    assert find_invalid_expressions("secret:")
    assert find_invalid_expressions("prefix-${uploads_bucket.arn")


def test_literals_with_colons_are_valid():
    assert find_invalid_expressions(["s3:ObjectCreated:*", "arn:aws:s3:::bucket", "$default"]) == []


def test_escaped_interpolation_is_a_literal():
    value = "arn:aws:s3:::uploads/home/$${aws:username}/*"
    assert find_invalid_expressions(value) == []
    assert find_references(value) == []
    assert not is_interpolated(value)
    assert unescape(value) == "arn:aws:s3:::uploads/home/${aws:username}/*"


def test_escape_next_to_a_reference():
    parts = interpolation_parts("$${stageVariables.x}/${upload_api.id}")
    assert parts == ["${stageVariables.x}/", Reference("upload_api", "id")]
    assert find_references("$${stageVariables.x}") == []


def test_invalid_expression_suggests_the_escape():
    problems = find_invalid_expressions("${aws:username}")
    assert len(problems) == 1
    assert "$${" in problems[0]
