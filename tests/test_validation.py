import pytest
import pulumi_aws as aws

from config import Config, load_config
from conftest import make_config
from validation import StackValidationError, ensure_valid, has_attribute, resolve_resource_class, validate


def codes(issues):
    return sorted({issue.code for issue in issues})


def test_resolve_resource_class():
    assert resolve_resource_class("s3.Bucket") is aws.s3.Bucket
    assert resolve_resource_class("lambda_.Function") is aws.lambda_.Function
    assert resolve_resource_class("s3.NoSuchThing") is None
    assert resolve_resource_class("nosuchmodule.Bucket") is None
    assert resolve_resource_class("Bucket") is None


def test_has_attribute_uses_resource_properties():
    assert has_attribute(aws.iam.Role, "arn")
    assert has_attribute(aws.iam.Role, "id")
    assert has_attribute(aws.apigatewayv2.Stage, "invoke_url")
    assert not has_attribute(aws.iam.Role, "parent_id")


def test_shipped_stack_is_valid(stack):
    assert validate(stack) == []
    ensure_valid(stack)


def test_broken_stack_reports_every_defect(broken_stack_path):
    config = Config.from_dict(load_config(broken_stack_path))
    issues = validate(config)
    assert codes(issues) == [
        "duplicate-resource",
        "invalid-expression",
        "unknown-attribute",
        "unknown-field",
        "unresolved-reference",
    ]
    messages = [str(issue) for issue in issues]
    assert any("eu_backup" in m for m in messages)
    assert any("'uploads'" in m for m in messages)
    assert any("lambda_exec.parent_id" in m for m in messages)
    assert any("'rule'" in m for m in messages)
    assert any("timestamp()" in m for m in messages)


def test_ensure_valid_aggregates_issues(broken_stack_path):
    config = Config.from_dict(load_config(broken_stack_path))
    with pytest.raises(StackValidationError) as excinfo:
        ensure_valid(config)
    assert len(excinfo.value.issues) == 6
    assert "6 issue(s)" in str(excinfo.value)


class AnyResource:
    invoke_url = property(lambda self: None)


def fake_types(resource_type):
    return AnyResource if resource_type != "bogus.Type" else None


def test_missing_fields_and_unknown_types():
    config = make_config([{"name": "nameless"}, {"name": "weird", "type": "bogus.Type"}])
    issues = validate(config, resolve_type=fake_types)
    assert [(i.code, i.resource) for i in issues] == [
        ("missing-field", "nameless"),
        ("unknown-type", "weird"),
    ]


def test_cycle_is_reported():
    config = make_config([
        {"name": "a", "type": "x.A", "args": {"v": "ref:b"}},
        {"name": "b", "type": "x.B", "depends_on": ["a"]},
    ])
    issues = validate(config, resolve_type=fake_types)
    assert codes(issues) == ["cycle"]
    assert issues[0].message == "a -> b -> a"


def test_outputs_are_checked():
    config = make_config(
        [{"name": "stage", "type": "x.Stage"}],
        outputs={"api_url": "${stage.invoke_url}/upload", "other": "${missing.url}", "bad": "${now()}"},
    )
    issues = validate(config, resolve_type=fake_types)
    assert [(i.code, i.resource) for i in issues] == [
        ("unresolved-reference", "outputs.other"),
        ("invalid-expression", "outputs.bad"),
    ]


def test_shared_physical_name_is_reported():
    config = make_config([
        {"name": "alerts", "type": "sns.Topic", "custom_name": "uploads"},
        {"name": "notices", "type": "sns.Topic", "custom_name": "uploads"},
        {"name": "bucket", "type": "s3.Bucket", "custom_name": "uploads"},
    ])
    issues = validate(config, resolve_type=fake_types)
    assert [(i.code, i.resource) for i in issues] == [("duplicate-physical-name", "notices")]
    assert "'alerts'" in issues[0].message


def test_custom_name_colliding_with_generated_name():
    config = make_config([
        {"name": "alerts", "type": "sns.Topic"},
        {"name": "notices", "type": "sns.Topic", "custom_name": "platform-uploads-dev-euw1-alerts"},
    ])
    assert codes(validate(config, resolve_type=fake_types)) == ["duplicate-physical-name"]


def test_non_string_dependency_is_reported():
    config = make_config([
        {"name": "a", "type": "x.A"},
        {"name": "b", "type": "x.B", "depends_on": [{"a": 1}, "a"]},
    ])
    issues = validate(config, resolve_type=fake_types)
    assert [(i.code, i.resource) for i in issues] == [("invalid-dependency", "b")]


def test_output_named_like_a_resource_is_reported():
    config = make_config(
        [{"name": "stage", "type": "x.Stage"}],
        outputs={"stage": "${stage.invoke_url}"},
    )
    issues = validate(config, resolve_type=fake_types)
    assert [(i.code, i.resource) for i in issues] == [("output-shadows-resource", "outputs.stage")]


def test_escaped_interpolation_is_valid():
    config = make_config([
        {"name": "policy", "type": "x.Policy", "args": {"resource": "arn:aws:s3:::bucket/home/$${aws:username}/*"}},
    ])
    assert validate(config, resolve_type=fake_types) == []
