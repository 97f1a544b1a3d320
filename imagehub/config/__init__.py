"""Runtime configuration package.

Module split:
    - `provider_config`: environment/YAML driven settings and the builders
      for the provider registry, generation service and publish dispatcher.
"""
