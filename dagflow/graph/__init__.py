"""Graph structures: nodes, edges, validation, resolution and execution."""

from dagflow.graph.condition import evaluate_branch, evaluate_rule, select_branch
from dagflow.graph.edge import EdgeSpec, WorkflowSpec
from dagflow.graph.executor import WorkflowExecutor, compute_run_status
from dagflow.graph.node import (
    AnyNode,
    ConditionBranch,
    ConditionNode,
    ConditionOperator,
    ConditionRule,
    HttpNode,
    InputNode,
    LLMMessage,
    LLMNode,
    NodeKind,
    NodeSpec,
    OutputMapping,
    OutputNode,
    TemplateNode,
    ToolNode,
)
from dagflow.graph.node_executors import NODE_EXECUTORS, NodeContext, NodeOutcome, run_node
from dagflow.graph.validator import ValidationResult, find_cycle, validate_workflow
from dagflow.graph.variables import (
    Template,
    VariableRef,
    compile_value,
    resolve_reference,
    resolve_value,
    stringify,
)

__all__ = [
    # Workflow structure
    "WorkflowSpec",
    "EdgeSpec",
    "AnyNode",
    "NodeKind",
    "NodeSpec",
    "InputNode",
    "TemplateNode",
    "HttpNode",
    "LLMMessage",
    "LLMNode",
    "ToolNode",
    "ConditionNode",
    "ConditionBranch",
    "ConditionRule",
    "ConditionOperator",
    "OutputNode",
    "OutputMapping",
    # Variables
    "VariableRef",
    "Template",
    "compile_value",
    "resolve_reference",
    "resolve_value",
    "stringify",
    # Validation
    "ValidationResult",
    "validate_workflow",
    "find_cycle",
    # Execution
    "WorkflowExecutor",
    "compute_run_status",
    "NODE_EXECUTORS",
    "NodeContext",
    "NodeOutcome",
    "run_node",
    "evaluate_rule",
    "evaluate_branch",
    "select_branch",
]
