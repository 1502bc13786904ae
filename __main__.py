import pulumi
from awsclassic import AWSResourceBuilder
from config import load_config


def main():
    # Load YAML configuration
    config_data = load_config("config.yaml")

    try:
        builder = AWSResourceBuilder(config_data)
    except Exception as e:
        pulumi.log.error(f"Failed to initialize AWSResourceBuilder: {e}")
        raise

    try:
        builder.build()
    except Exception as e:
        pulumi.log.error(f"Failed during resource build: {e}")
        raise

    # Export created resources and declared outputs
    builder.export_outputs()

if __name__ == "__main__":
    main()
