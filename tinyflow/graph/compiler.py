"""
Graph Compiler - turns a WorkflowDefinition into an executable WorkflowGraph.

The compiler:
1. Checks node ids are unique and sub-nodes point at a cluster root
2. Classifies every node's execution strategy
3. Moves sub-nodes (and the edges touching them) onto their cluster root
4. Groups the remaining edges by source, keeping declaration order
5. Resolves workflow middleware and merges workflow-level env

Problems are reported on the CompilationResult, never raised.
"""

import json
import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from tinyflow.graph.edge import EdgeSpec, WorkflowGraph
from tinyflow.graph.node import (
    PARALLEL_BATCH_FUNCTIONS,
    SEQUENTIAL_BATCH_FUNCTIONS,
    NodeSpec,
    NodeStrategy,
    RetryConfig,
)
from tinyflow.middleware.registry import MiddlewareRegistry, create_default_middleware_registry
from tinyflow.registry.registry import FunctionCatalog
from tinyflow.schema.workflow import (
    EdgeType,
    NodeRuntime,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)

logger = logging.getLogger(__name__)


@dataclass
class CompilationResult:
    """Outcome of compiling a workflow. `graph` is None when compilation failed."""

    success: bool
    graph: WorkflowGraph | None = None
    start_node_id: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def classify_strategy(node: WorkflowNode) -> NodeStrategy:
    """Cluster flag first, then reserved batch ids, else regular."""
    if node.is_cluster_root:
        return NodeStrategy.CLUSTER_ROOT
    if node.function_id in SEQUENTIAL_BATCH_FUNCTIONS:
        return NodeStrategy.SEQUENTIAL_BATCH
    if node.function_id in PARALLEL_BATCH_FUNCTIONS:
        return NodeStrategy.PARALLEL_BATCH
    return NodeStrategy.REGULAR


def _retry_config(node: WorkflowNode, flow_runtime: NodeRuntime | None) -> RetryConfig:
    runtime = node.runtime or flow_runtime
    if runtime is None:
        return RetryConfig()
    return RetryConfig(max_retries=runtime.max_retries, retry_delay_ms=runtime.retry_delay)


def _to_node_spec(node: WorkflowNode, flow_runtime: NodeRuntime | None) -> NodeSpec:
    return NodeSpec(
        id=node.id,
        function_id=node.function_id,
        params=dict(node.params),
        env_overrides=dict(node.envs),
        retry=_retry_config(node, flow_runtime),
        strategy=classify_strategy(node),
        label=node.label,
    )


def _owning_root(
    edge: WorkflowEdge, roots: set[str], parent_of: dict[str, str]
) -> str | None:
    """Cluster root an edge belongs to, or None for a main-graph edge."""
    touches_sub_node = edge.source in parent_of or edge.target in parent_of
    if edge.edge_type != EdgeType.SUBNODE and not touches_sub_node:
        return None
    if edge.source in roots:
        return edge.source
    return parent_of.get(edge.source) or parent_of.get(edge.target)


def compile_workflow(
    workflow: WorkflowDefinition,
    global_envs: dict[str, str] | None = None,
    middleware_registry: MiddlewareRegistry | None = None,
    catalog: FunctionCatalog | None = None,
) -> CompilationResult:
    """
    Compile a workflow definition.

    Args:
        workflow: Parsed workflow document
        global_envs: Base environment, overridden by the workflow's own envs
        middleware_registry: Where `flow.middleware` ids are looked up
            (the built-in registry when omitted)
        catalog: Optional FunctionCatalog; unknown function ids become warnings

    Returns:
        CompilationResult with the graph on success
    """
    errors: list[str] = []
    warnings: list[str] = []

    # === NODES ===
    seen: set[str] = set()
    for node in workflow.nodes:
        if node.id in seen:
            errors.append(f'Duplicate node id "{node.id}"')
        seen.add(node.id)

    by_id = {node.id: node for node in workflow.nodes}
    roots = {node.id for node in workflow.nodes if node.is_cluster_root}
    parent_of: dict[str, str] = {}
    for node in workflow.nodes:
        if not node.is_sub_node:
            continue
        if not node.parent_id:
            errors.append(f'Sub-node "{node.id}" has no parentId')
        elif node.parent_id not in roots:
            errors.append(f'Sub-node "{node.id}" parent "{node.parent_id}" is not a cluster root')
        else:
            parent_of[node.id] = node.parent_id

    flow_runtime = workflow.flow.runtime
    nodes: dict[str, NodeSpec] = {}
    for node in workflow.nodes:
        if node.is_sub_node:
            continue
        nodes[node.id] = _to_node_spec(node, flow_runtime)

    for sub_id, root_id in parent_of.items():
        nodes[root_id].sub_nodes.append(_to_node_spec(by_id[sub_id], flow_runtime))

    if catalog is not None:
        for node in workflow.nodes:
            if not catalog.has(node.function_id):
                warnings.append(
                    f'Node "{node.id}": function "{node.function_id}" is not registered'
                )

    # === EDGES ===
    edges: dict[str, list[EdgeSpec]] = {}
    sub_node_edges: dict[str, list[EdgeSpec]] = {}
    for edge in workflow.edges:
        spec = EdgeSpec(source=edge.source, target=edge.target, action=edge.action)
        root_id = _owning_root(edge, roots, parent_of)
        if root_id is not None:
            sub_node_edges.setdefault(root_id, []).append(spec)
            continue
        if edge.source not in nodes:
            errors.append(f'Edge references unknown source node "{edge.source}"')
        if edge.target not in nodes:
            errors.append(f'Edge references unknown target node "{edge.target}"')
        edges.setdefault(edge.source, []).append(spec)

    start_node_id = workflow.flow.start_node_id
    if start_node_id not in nodes:
        errors.append(f'Start node "{start_node_id}" not found')

    # === MIDDLEWARE ===
    registry = middleware_registry
    if registry is None:
        registry = create_default_middleware_registry()
    middleware_ids = []
    for middleware_id in workflow.flow.middleware:
        if registry.has(middleware_id):
            middleware_ids.append(middleware_id)
        else:
            warnings.append(f'Middleware "{middleware_id}" not found, skipping')

    if errors:
        logger.error(f"❌ Compilation of '{workflow.id}' failed with {len(errors)} error(s)")
        for err in errors:
            logger.error(f"   • {err}")
        return CompilationResult(success=False, errors=errors, warnings=warnings)

    graph = WorkflowGraph(
        id=workflow.id,
        nodes=nodes,
        edges=edges,
        start_node_id=start_node_id,
        global_env=dict(global_envs or {}),
        env=dict(workflow.flow.envs),
        sub_node_edges=sub_node_edges,
        middleware_ids=middleware_ids,
        middleware=registry.resolve(middleware_ids),
    )

    for warning in warnings:
        logger.warning(f"⚠ {warning}")
    logger.info(
        f"✓ Compiled '{workflow.id}': {len(nodes)} nodes, "
        f"{sum(len(e) for e in edges.values())} edges, start={start_node_id}"
    )
    return CompilationResult(
        success=True,
        graph=graph,
        start_node_id=start_node_id,
        errors=errors,
        warnings=warnings,
    )


def compile_workflow_from_json(
    text: str,
    global_envs: dict[str, str] | None = None,
    middleware_registry: MiddlewareRegistry | None = None,
    catalog: FunctionCatalog | None = None,
) -> CompilationResult:
    """Parse and compile a JSON workflow document; parse problems become errors."""
    try:
        workflow = WorkflowDefinition.from_json(text)
    except json.JSONDecodeError as e:
        return CompilationResult(success=False, errors=[f"JSON parse error: {e}"])
    except ValidationError as e:
        return CompilationResult(success=False, errors=[f"Schema error: {e}"])
    return compile_workflow(
        workflow,
        global_envs=global_envs,
        middleware_registry=middleware_registry,
        catalog=catalog,
    )
