"""
Structural plagiarism detection for student lab submissions.

Modules:
- tree: immutable labeled ordered trees
- costs: edit operation cost models
- distance: ordered tree edit distance
- detectors: similarity strategies behind one interface
- grouping: length bucketing for candidate pruning
- parser: Python source to tree conversion
- linter: style checker collaborator
- storage: on-disk cache of parsed labs
- orchestrator: concurrent lab-against-labs comparison
- config: YAML/environment configuration
- report: JSON report hand-off
"""

from .tree import (
    AstNode,
    node,
    tree_size,
    iter_preorder,
    render_tree,
)

from .costs import (
    CostModel,
    UnitCostModel,
    WeightedCostModel,
    label_similarity,
)

from .distance import (
    TreeEditDistance,
    tree_edit_distance,
)

from .detectors import (
    Detector,
    TreeEditDetector,
    TokenOverlapDetector,
    CodeMetricsDetector,
    PatternMatchingDetector,
    DataFlowDetector,
    EnsembleDetector,
    build_detector,
    similarity_from_distance,
)

from .grouping import (
    GroupKeySelector,
    normalize_source,
)

from .models import (
    Method,
    Submission,
    Lab,
    Finding,
    MethodFinding,
    ComparisonReport,
)

from .parser import PythonParser, ParsedSource
from .linter import Linter
from .storage import LabStorage, encode_tree, decode_tree

from .orchestrator import (
    PlagiarismOrchestrator,
    SimilarityCache,
)

from .config import (
    DetectionConfig,
    GroupingConfig,
    LinterConfig,
    Granularity,
    ErrorPolicy,
    load_config,
)

from .report import report_to_dict, save_report, format_summary

from .errors import (
    LabguardError,
    ConfigError,
    ComparisonTooLargeError,
    OrchestrationError,
    StorageError,
    TreeTooDeepError,
)

__all__ = [
    # tree
    "AstNode",
    "node",
    "tree_size",
    "iter_preorder",
    "render_tree",
    # costs
    "CostModel",
    "UnitCostModel",
    "WeightedCostModel",
    "label_similarity",
    # distance
    "TreeEditDistance",
    "tree_edit_distance",
    # detectors
    "Detector",
    "TreeEditDetector",
    "TokenOverlapDetector",
    "CodeMetricsDetector",
    "PatternMatchingDetector",
    "DataFlowDetector",
    "EnsembleDetector",
    "build_detector",
    "similarity_from_distance",
    # grouping
    "GroupKeySelector",
    "normalize_source",
    # models
    "Method",
    "Submission",
    "Lab",
    "Finding",
    "MethodFinding",
    "ComparisonReport",
    # collaborators
    "PythonParser",
    "ParsedSource",
    "Linter",
    # storage
    "LabStorage",
    "encode_tree",
    "decode_tree",
    # orchestrator
    "PlagiarismOrchestrator",
    "SimilarityCache",
    # config
    "DetectionConfig",
    "GroupingConfig",
    "LinterConfig",
    "Granularity",
    "ErrorPolicy",
    "load_config",
    # report
    "report_to_dict",
    "save_report",
    "format_summary",
    # errors
    "LabguardError",
    "ConfigError",
    "ComparisonTooLargeError",
    "OrchestrationError",
    "StorageError",
    "TreeTooDeepError",
]
