"""Model family -> payload builder."""

from arcrunner.services.builders.base import PayloadBuilder
from arcrunner.services.builders.flux import FluxPayloadBuilder
from arcrunner.services.builders.kling import KlingPayloadBuilder
from arcrunner.services.builders.nano import NanoPayloadBuilder
from arcrunner.services.builders.veo import VeoPayloadBuilder
from arcrunner.services.models import ModelFamily, get_model_config

_BUILDERS: dict[str, PayloadBuilder] = {
    "veo": VeoPayloadBuilder(),
    "flux": FluxPayloadBuilder(),
    "nano": NanoPayloadBuilder(),
    "kling": KlingPayloadBuilder(),
}


def get_builder_for_family(family: ModelFamily) -> PayloadBuilder:
    try:
        return _BUILDERS[family]
    except KeyError:
        raise ValueError(f"No payload builder for model family: {family}") from None


def get_builder(model_id: str) -> PayloadBuilder:
    """Return the builder for a model id. Unknown ids use the default model's family."""
    return get_builder_for_family(get_model_config(model_id).family)
