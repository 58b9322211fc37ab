"""Plugin layer - layer-name grammar, document access and projection.

The document side (``SandboxController``) and the panel side
(``PluginWorkflow``) talk through the messages in ``messages``.
"""

from layersync.plugin.document import DocumentHost, InMemoryDocument
from layersync.plugin.layer_parser import SelectorDescriptor, parse_layer_name
from layersync.plugin.projector import ApplyReport, apply_records, apply_results

__all__ = [
    "DocumentHost",
    "InMemoryDocument",
    "SelectorDescriptor",
    "parse_layer_name",
    "ApplyReport",
    "apply_records",
    "apply_results",
]
