from aduib_feign.config.models import ClientConfigProperties, FeignClientProperties
from aduib_feign.config.options import Options, OptionsCell, OptionsRegistry, options_name

__all__ = [
    "ClientConfigProperties",
    "FeignClientProperties",
    "Options",
    "OptionsCell",
    "OptionsRegistry",
    "options_name",
]
