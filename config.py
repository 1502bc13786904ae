"""
This module defines the data structures for our configuration and the
loader that reads a YAML stack definition into them.
"""

import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

REQUIRED_KEYS = ["team", "service", "environment", "region"]
RESOURCE_KEYS = {"name", "type", "args", "custom_name", "depends_on"}

AWS_REGION_ABBREVIATIONS = {
    "us-east-1": "use1",
    "us-east-2": "use2",
    "us-west-1": "usw1",
    "us-west-2": "usw2",
    "af-south-1": "afs1",
    "ap-east-1": "ape1",
    "ap-south-1": "aps1",
    "ap-northeast-1": "apne1",
    "ap-northeast-2": "apne2",
    "ap-northeast-3": "apne3",
    "ap-southeast-1": "apse1",
    "ap-southeast-2": "apse2",
    "ca-central-1": "cac1",
    "eu-central-1": "euc1",
    "eu-west-1": "euw1",
    "eu-west-2": "euw2",
    "eu-west-3": "euw3",
    "eu-north-1": "eun1",
    "eu-south-1": "eus1",
    "me-south-1": "mes1",
    "sa-east-1": "sae1",
    "us-gov-east-1": "usge1",
    "us-gov-west-1": "usgw1",
    "cn-north-1": "cnn1",
    "cn-northwest-1": "cnnw1",
}


def region_abbreviation(region: str) -> str:
    return AWS_REGION_ABBREVIATIONS.get(region.lower(), region.split("-")[0].lower())


def generate_resource_name(config_data: Dict[str, Any], base_name: str) -> str:
    team = str(config_data.get("team", "team")).strip().lower()
    service = str(config_data.get("service", "svc")).strip().lower()
    env = str(config_data.get("environment", "dev")).strip().lower()
    reg_abbr = region_abbreviation(str(config_data.get("region", "us-east-1")))
    return f"{team}-{service}-{env}-{reg_abbr}-{base_name}".lower()


def load_config(file_path: str) -> Dict[str, Any]:
    """Load and validate YAML configuration from the given file path."""
    with open(file_path, "r") as file:
        config_data = yaml.safe_load(file)

    if not isinstance(config_data, dict):
        raise ValueError(f"Configuration in '{file_path}' must be a mapping")

    # Ensure required keys exist
    for key in REQUIRED_KEYS:
        if key not in config_data:
            raise ValueError(f"Missing required configuration key: {key}")

    return config_data


@dataclass
class AWSResource:
    name: str
    type: str
    args: Dict[str, Any] = field(default_factory=dict)
    custom_name: Optional[str] = None
    depends_on: List[str] = field(default_factory=list)
    # keys outside RESOURCE_KEYS, kept so validation can report them
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AWSResource":
        if not isinstance(data, dict):
            raise ValueError(f"Resource declaration must be a mapping, got {type(data).__name__}: {data!r}")
        args = data.get("args") or {}
        if not isinstance(args, dict):
            raise ValueError(f"'args' of resource '{data.get('name', '')}' must be a mapping")
        depends_on = data.get("depends_on") or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        elif not isinstance(depends_on, list):
            raise ValueError(f"'depends_on' of resource '{data.get('name', '')}' must be a name or a list of names")
        return cls(
            name=data.get("name", ""),
            type=data.get("type", ""),
            args=dict(args),
            custom_name=data.get("custom_name"),
            depends_on=list(depends_on),
            extra={k: v for k, v in data.items() if k not in RESOURCE_KEYS},
        )

    @property
    def existing(self) -> bool:
        return bool(self.args.get("existing", False))


def _mapping(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be a mapping")
    return dict(value)


@dataclass
class Config:
    team: str
    service: str
    environment: str
    region: str
    tags: Dict[str, str] = field(default_factory=dict)
    aws_resources: List[AWSResource] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        resources = data.get("aws_resources") or []
        if not isinstance(resources, list):
            raise ValueError("'aws_resources' must be a list of resource declarations")
        return cls(
            team=data["team"],
            service=data["service"],
            environment=data["environment"],
            region=data["region"],
            tags=_mapping(data, "tags"),
            aws_resources=[AWSResource.from_dict(r) for r in resources],
            outputs=_mapping(data, "outputs"),
        )

    def resource_names(self) -> List[str]:
        return [r.name for r in self.aws_resources]

    def physical_name(self, resource: AWSResource) -> str:
        """Name Pulumi registers the resource under; custom_name wins over the generated one."""
        if resource.custom_name:
            return resource.custom_name
        return generate_resource_name(
            {"team": self.team, "service": self.service, "environment": self.environment, "region": self.region},
            resource.name,
        )
