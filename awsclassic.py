import pulumi
import pulumi_aws as aws
import inspect
import re
from typing import Any, Callable, Dict, List

from config import AWSResource, Config, generate_resource_name, region_abbreviation
from expressions import (
    ARCHIVE_PREFIX,
    ASSET_PREFIX,
    ESCAPE,
    JSON_KEY,
    LOOKUP_PREFIX,
    REF_PREFIX,
    SECRET_PREFIX,
    Reference,
    interpolation_parts,
    is_interpolated,
    parse_reference,
    unescape,
)
from graph import ResourceGraph
from validation import ensure_valid, resolve_resource_class

# provider-native values resolved at deploy time instead of in the definition
LOOKUPS: Dict[str, Callable[[], Any]] = {
    "region": lambda: region_of(aws.get_region()),
    "account_id": lambda: aws.get_caller_identity().account_id,
    "partition": lambda: aws.get_partition().partition,
}


def region_of(result: Any) -> str:
    # pulumi-aws 7 moved the region name from `name` to `region`
    return getattr(result, "region", None) or result.name


def to_snake_case(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


def resolve_reference(ref: Reference, resources: Dict[str, Any]) -> Any:
    if ref.resource not in resources:
        raise ValueError(f"Referenced resource '{ref.resource}' not found.")
    resource_obj = resources[ref.resource]
    attr_val = getattr(resource_obj, ref.attribute, None)
    if attr_val is None:
        raise ValueError(f"Attribute '{ref.attribute}' not found on resource '{ref.resource}'")
    return attr_val


def resolve_value(value: Any, resources: Dict[str, Any]) -> Any:
    if isinstance(value, dict):
        if set(value) == {JSON_KEY}:
            return pulumi.Output.json_dumps(resolve_value(value[JSON_KEY], resources))
        return {k: resolve_value(v, resources) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_value(item, resources) for item in value]
    elif isinstance(value, str):
        if value.startswith(SECRET_PREFIX):
            # Fetch secret from Pulumi config
            secret_key = value[len(SECRET_PREFIX):]
            config = pulumi.Config()
            return config.require_secret(secret_key)
        elif value.startswith(REF_PREFIX):
            return resolve_reference(parse_reference(value[len(REF_PREFIX):]), resources)
        elif value.startswith(LOOKUP_PREFIX):
            key = value[len(LOOKUP_PREFIX):]
            if key not in LOOKUPS:
                raise ValueError(f"Unknown lookup '{key}'")
            return LOOKUPS[key]()
        elif value.startswith(ARCHIVE_PREFIX):
            return pulumi.FileArchive(value[len(ARCHIVE_PREFIX):])
        elif value.startswith(ASSET_PREFIX):
            return pulumi.FileAsset(value[len(ASSET_PREFIX):])
        elif is_interpolated(value):
            parts = [
                resolve_reference(part, resources) if isinstance(part, Reference) else part
                for part in interpolation_parts(value)
            ]
            return pulumi.Output.concat(*parts)
        elif ESCAPE in value:
            return unescape(value)
        else:
            return value
    else:
        return value


def constructor_signature(resource_class: type) -> inspect.Signature:
    # generated classes take *args/**kwargs in __init__ and declare their real arguments here
    return inspect.signature(getattr(resource_class, "_internal_init", resource_class.__init__))


def get_lookup_params(required_params: set, resolved_args: dict) -> dict:
    lookup_params = {}
    for param in required_params:
        snake_key = to_snake_case(param)
        if snake_key in resolved_args:
            lookup_params[param] = resolved_args[snake_key]
        elif param in resolved_args:
            lookup_params[param] = resolved_args[param]
    return lookup_params


class AWSResourceBuilder:
    def __init__(self, config_data: dict):
        self.config = config_data
        self.stack = Config.from_dict(config_data)
        self.resources: Dict[str, Any] = {}

    def get_abbreviation(self, region: str) -> str:
        return region_abbreviation(region)

    def generate_resource_name(self, base_name: str) -> str:
        return generate_resource_name(self.config, base_name)

    def physical_name(self, resource: AWSResource) -> str:
        return self.stack.physical_name(resource)

    def resolve_args(self, args: dict) -> dict:
        return {key: resolve_value(value, self.resources) for key, value in args.items()}

    def _apply_common_parameters(self, resolved_args: dict, init_sig: inspect.Signature) -> dict:
        if "tags" in init_sig.parameters:
            resource_tags = self.config.get("tags")
            if resource_tags:
                resolved_args.setdefault("tags", resource_tags)
        else:
            resolved_args.pop("tags", None)
        if "region" in init_sig.parameters:
            if "region" not in resolved_args:
                resolved_args["region"] = self.config.get("region", "us-east-1")
        else:
            resolved_args.pop("region", None)
        return resolved_args

    def desired_args(self, resource: AWSResource) -> dict:
        """Declared args plus the stack-wide tags/region defaults, before any value is resolved."""
        args = resource.args.copy()
        args.pop("existing", None)
        resource_class = resolve_resource_class(resource.type)
        if resource_class is None:
            return args
        return self._apply_common_parameters(args, constructor_signature(resource_class))

    def _lookup_existing(self, name: str, resource_type: str, resolved_args: dict) -> Any:
        module_name, class_name = resource_type.rsplit(".", 1)
        module = getattr(aws, module_name)
        get_func_name = f"get_{to_snake_case(class_name)}"
        try:
            get_func = getattr(module, get_func_name)
            sig = inspect.signature(get_func)
            get_required = {k for k, param in sig.parameters.items() if k not in {"opts"} and param.default == param.empty}
            get_params = get_lookup_params(set(sig.parameters) - {"opts"}, resolved_args)
            missing = get_required - set(get_params.keys())
            if missing:
                pulumi.log.warn(f"Missing required params {missing} for existing resource '{name}'. Skipping the lookup attempt.")
                return None
            existing_resource = get_func(**get_params)
            pulumi.log.info(f"Fetched existing resource '{name}' via '{get_func_name}' with {get_params}")
            return existing_resource
        except AttributeError:
            pulumi.log.warn(f"Function '{get_func_name}' not found for '{resource_type}'. Proceeding to create new resource '{name}'.")
        except Exception as e:
            pulumi.log.warn(f"Failed to retrieve existing resource '{name}': {e}. Proceeding with creation.")
        return None

    def _dependency_options(self, dependencies: List[str]) -> Dict[str, Any]:
        depends_on = [self.resources[d] for d in dependencies if isinstance(self.resources.get(d), pulumi.Resource)]
        if not depends_on:
            return {}
        return {"opts": pulumi.ResourceOptions(depends_on=depends_on)}

    def build_resource(self, resource: AWSResource, dependencies: List[str]) -> Any:
        ResourceClass = resolve_resource_class(resource.type)
        if ResourceClass is None:
            raise ValueError(f"Resource type '{resource.type}' not found for '{resource.name}'")
        args = resource.args.copy()
        is_existing = args.pop("existing", False)
        resolved_args = self.resolve_args(args)
        if is_existing:
            existing_resource = self._lookup_existing(resource.name, resource.type, resolved_args)
            if existing_resource is not None:
                self.resources[resource.name] = existing_resource
                return existing_resource
        resolved_args = self._apply_common_parameters(resolved_args, constructor_signature(ResourceClass))
        resolved_args.update(self._dependency_options(dependencies))
        pulumi_name = self.physical_name(resource)
        pulumi.log.debug(f"Final resolved args for '{resource.name}': {resolved_args}")
        resource_instance = ResourceClass(pulumi_name, **resolved_args)
        self.resources[resource.name] = resource_instance
        pulumi.log.info(f"Created resource: {pulumi_name} ({resource.type})")
        return resource_instance

    def build(self):
        ensure_valid(self.stack)
        graph = ResourceGraph.from_config(self.stack)
        declared = {r.name: r for r in self.stack.aws_resources}
        for name in graph.create_order():
            self.build_resource(declared[name], graph.dependencies(name))

    def export_outputs(self):
        for name, resource in self.resources.items():
            if not isinstance(resource, pulumi.Resource):
                continue
            try:
                pulumi.export(name, resource.id)
            except Exception as e:
                pulumi.log.warn(f"Failed to export resource '{name}': {e}")
        for output_name, expression in self.stack.outputs.items():
            pulumi.export(output_name, resolve_value(expression, self.resources))
