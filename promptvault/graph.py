"""
ComfyUI Workflow Graph Normalization
====================================

Turns either ComfyUI export shape into one canonical node map.

API format (``File > Export (API)``)::

    {"3": {"class_type": "KSampler", "inputs": {"positive": ["6", 0], ...}}}

UI format (``File > Save``)::

    {"nodes": [{"id": 3, "type": "KSampler", "widgets_values": [...],
                "inputs": [{"name": "positive", "link": 4}]}],
     "links": [[4, 6, 0, 3, 1, "CONDITIONING"]]}

The format is detected once in ``normalize``; everything downstream only sees
``CanonicalGraph``.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Optional, NamedTuple

from .node_types import DEFAULT_NODE_TYPES, NodeTypeConfig


class WorkflowFormat(str, Enum):
    API = "api"
    UI = "ui"
    UNKNOWN = "unknown"


class EdgeRef(NamedTuple):
    """Data-flow edge from another node's output slot."""
    source_node_id: str
    source_slot: int


@dataclass(frozen=True)
class CanonicalNode:
    class_type: Optional[str]
    inputs: Mapping[str, Any] = field(default_factory=dict)
    title: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'inputs', MappingProxyType(dict(self.inputs)))

    def edges(self) -> Iterator[tuple]:
        """Yield ``(input_name, EdgeRef)`` for every connected input."""
        for input_name, value in self.inputs.items():
            if isinstance(value, EdgeRef):
                yield input_name, value


class CanonicalGraph(Mapping):
    """Read-only node id -> ``CanonicalNode`` map in document order."""

    def __init__(self, nodes: Dict[str, CanonicalNode], source_format: WorkflowFormat,
                 document: Any = None):
        self._nodes = MappingProxyType(dict(nodes))
        self.source_format = source_format
        # API-shaped document this graph was built from (the input itself for API format)
        self.document = document

    def __getitem__(self, node_id: str) -> CanonicalNode:
        return self._nodes[node_id]

    def __iter__(self):
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"CanonicalGraph(format={self.source_format.value}, nodes={len(self)})"

    def find_consumers(self, node_id: str) -> list:
        """Every edge whose source is ``node_id``.

        Returns a list of ``{"target_node_id", "target_input", "source_slot"}``
        dicts in graph order.
        """
        connections = []
        for target_node_id, target_node in self._nodes.items():
            for input_name, edge in target_node.edges():
                if edge.source_node_id == node_id:
                    connections.append({
                        "target_node_id": target_node_id,
                        "target_input": input_name,
                        "source_slot": edge.source_slot,
                    })
        return connections

    def to_api_format(self) -> Dict[str, Any]:
        """Render the graph as an API-format workflow dict."""
        api_workflow = {}
        for node_id, node in self._nodes.items():
            api_node = {
                "class_type": node.class_type,
                "inputs": {
                    name: [value.source_node_id, value.source_slot] if isinstance(value, EdgeRef) else value
                    for name, value in node.inputs.items()
                },
            }
            if node.title:
                api_node["_meta"] = {"title": node.title}
            api_workflow[node_id] = api_node
        return api_workflow


def is_node_id(key: Any) -> bool:
    """True for non-negative integer strings such as ``"12"``."""
    return isinstance(key, str) and key.isascii() and key.isdigit()


def detect_format(document: Any) -> WorkflowFormat:
    """Sniff the export shape of a raw workflow document."""
    if not isinstance(document, dict):
        return WorkflowFormat.UNKNOWN
    if any(is_node_id(key) for key in document):
        return WorkflowFormat.API
    if isinstance(document.get('nodes'), list):
        return WorkflowFormat.UI
    return WorkflowFormat.UNKNOWN


def _as_edge(value: Any) -> Optional[EdgeRef]:
    """Recognize an API-format ``[source_node_id, output_slot]`` pair."""
    if isinstance(value, (list, tuple)) and len(value) == 2:
        source, slot = value
        if _is_key(source) and isinstance(slot, int) and not isinstance(slot, bool):
            return EdgeRef(str(source), slot)
    return None


def _is_key(value: Any) -> bool:
    """Node and link ids are plain strings or integers."""
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def _class_type(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def build_link_table(document: Dict[str, Any]) -> Dict[Any, EdgeRef]:
    """Map UI-format link ids to their origin node and slot.

    Accepts both link encodings ComfyUI writes:
    ``[link_id, origin_id, origin_slot, target_id, target_slot, type]`` and
    ``{"id", "origin_id", "origin_slot", ...}``. Rows whose ids are not
    strings or integers are skipped.
    """
    link_table = {}
    links = document.get('links')
    if not isinstance(links, list):
        return link_table

    for link in links:
        if isinstance(link, dict):
            link_id = link.get('id')
            origin_id = link.get('origin_id')
            origin_slot = link.get('origin_slot', 0)
        elif isinstance(link, list) and len(link) >= 3:
            link_id, origin_id, origin_slot = link[0], link[1], link[2]
        else:
            continue
        if not _is_key(link_id) or not _is_key(origin_id):
            continue
        link_table[link_id] = EdgeRef(str(origin_id), origin_slot if isinstance(origin_slot, int) else 0)
    return link_table


def decode_inputs(node: Dict[str, Any], links: Optional[Dict[Any, EdgeRef]] = None,
                  node_types: NodeTypeConfig = DEFAULT_NODE_TYPES) -> Dict[str, Any]:
    """Rebuild named inputs for a UI-format node.

    Widget values are mapped through the layout table for ``node["type"]``;
    connected input slots then become ``EdgeRef`` values, overriding any widget
    value of the same name. Slots whose ``name`` is not a string or whose
    ``link`` is not a string or integer are skipped.

    Without a link table entry the link id is taken as the origin node id.
    ComfyUI link ids are independent of node ids, so this fallback is only
    right for hand-written or simplified documents.
    """
    inputs = {}

    node_type = _class_type(node.get('type'))
    layout = node_types.widget_layouts.get(node_type) if node_type else None
    if layout is not None:
        inputs.update(layout.decode(node.get('widgets_values')))

    slots = node.get('inputs')
    if isinstance(slots, list):
        for slot in slots:
            if not isinstance(slot, dict) or not isinstance(slot.get('name'), str):
                continue
            link_id = slot.get('link')
            if not _is_key(link_id):
                continue
            edge = links.get(link_id) if links else None
            inputs[slot['name']] = edge or EdgeRef(str(link_id), 0)

    return inputs


def normalize(document: Any, node_types: NodeTypeConfig = DEFAULT_NODE_TYPES) -> CanonicalGraph:
    """Build the canonical graph for a raw workflow document.

    Never raises. Every numeric API key and every ``nodes`` element becomes a
    node; entries that are not objects, or whose class type is missing or not
    a string, keep ``class_type=None`` so validation still sees them.
    Unrecognized documents yield an empty graph with format ``UNKNOWN``.
    """
    workflow_format = detect_format(document)

    if workflow_format is WorkflowFormat.API:
        nodes = {}
        for node_id, node_data in document.items():
            if not is_node_id(node_id):
                continue
            if not isinstance(node_data, dict):
                nodes[node_id] = CanonicalNode(None)
                continue
            raw_inputs = node_data.get('inputs')
            inputs = {}
            if isinstance(raw_inputs, dict):
                for name, value in raw_inputs.items():
                    edge = _as_edge(value)
                    inputs[name] = edge if edge is not None else value
            meta = node_data.get('_meta')
            title = meta.get('title') if isinstance(meta, dict) else None
            nodes[node_id] = CanonicalNode(_class_type(node_data.get('class_type')), inputs, title)
        return CanonicalGraph(nodes, workflow_format, document)

    if workflow_format is WorkflowFormat.UI:
        links = build_link_table(document)
        nodes = {}
        for index, node in enumerate(document['nodes']):
            if not isinstance(node, dict):
                nodes.setdefault(str(index), CanonicalNode(None))
                continue
            class_type = _class_type(node.get('type'))
            nodes[str(node.get('id'))] = CanonicalNode(
                class_type,
                decode_inputs(node, links, node_types),
                node.get('title') or class_type,
            )
        graph = CanonicalGraph(nodes, workflow_format)
        graph.document = graph.to_api_format()
        return graph

    return CanonicalGraph({}, workflow_format, document)
