"""
Structural analysis of projections and queries

analyze() is a pure function: it derives field counts, nesting depth, a
complexity score and a list of optimization opportunities. It recurses into
nested descriptors and does not cycle-detect; run validate_descriptor()
first.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from projopt.core.context import OptimizationContext
from projopt.core.descriptor import Descriptor, to_descriptor
from projopt.core.query import to_query


@dataclass(frozen=True)
class FieldAnalysis:
    all_fields: Tuple[str, ...]
    included_fields: Tuple[str, ...]
    excluded_fields: Tuple[str, ...]
    nested_fields: Tuple[str, ...]
    lazy_fields: Tuple[str, ...] = ()
    pushed_fields: Tuple[str, ...] = ()

    @property
    def count(self) -> int:
        return len(self.all_fields)

    @property
    def included_count(self) -> int:
        return len(self.included_fields)

    @property
    def excluded_count(self) -> int:
        return len(self.excluded_fields)

    @property
    def nested_count(self) -> int:
        return len(self.nested_fields)

    @property
    def lazy_count(self) -> int:
        return len(self.lazy_fields)

    @property
    def pushed_count(self) -> int:
        return len(self.pushed_fields)


@dataclass(frozen=True)
class ComplexityAnalysis:
    field_count: int
    nested_field_count: int
    nested_depth: int
    total_field_count: int
    complexity_score: float
    complexity_level: str


@dataclass(frozen=True)
class OptimizationOpportunity:
    """A hint that some strategy may pay off"""

    type: str  # 'field_selection', 'nested_fields', 'pushdown', 'lazy_loading'
    description: str
    impact: str  # 'low', 'medium', 'high'
    fields: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Analysis:
    """Derived summary of a descriptor; recomputed whenever needed"""

    type: str
    fields: FieldAnalysis
    complexity: ComplexityAnalysis
    optimization_opportunities: Tuple[OptimizationOpportunity, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        f, c = self.fields, self.complexity
        return {
            "type": self.type,
            "fields": {
                "all_fields": list(f.all_fields),
                "included_fields": list(f.included_fields),
                "excluded_fields": list(f.excluded_fields),
                "nested_fields": list(f.nested_fields),
                "lazy_fields": list(f.lazy_fields),
                "pushed_fields": list(f.pushed_fields),
                "count": f.count,
                "included_count": f.included_count,
                "excluded_count": f.excluded_count,
                "nested_count": f.nested_count,
            },
            "complexity": {
                "field_count": c.field_count,
                "nested_field_count": c.nested_field_count,
                "nested_depth": c.nested_depth,
                "total_field_count": c.total_field_count,
                "complexity_score": c.complexity_score,
                "complexity_level": c.complexity_level,
            },
            "optimization_opportunities": [
                {"type": o.type, "description": o.description, "impact": o.impact}
                for o in self.optimization_opportunities
            ],
        }


def analyze(projection: Any, context: Optional[OptimizationContext] = None) -> Analysis:
    """
    Analyze a projection

    Args:
        projection: Descriptor or raw projection
        context: Optimization context

    Returns:
        Analysis results
    """
    context = context or OptimizationContext()
    descriptor = to_descriptor(projection)

    fields = analyze_fields(descriptor)
    complexity = analyze_complexity(descriptor)
    opportunities = identify_optimization_opportunities(fields, complexity, context)

    return Analysis(
        type=descriptor.metadata.type,
        fields=fields,
        complexity=complexity,
        optimization_opportunities=tuple(opportunities),
    )


def analyze_fields(descriptor: Descriptor) -> FieldAnalysis:
    """Classify the top-level fields of a descriptor"""
    all_fields, included, excluded, nested, lazy, pushed = [], [], [], [], [], []

    for name, spec in descriptor.fields.items():
        all_fields.append(name)
        (included if spec.include else excluded).append(name)
        if spec.nested is not None:
            nested.append(name)
        if spec.lazy:
            lazy.append(name)
        if spec.pushed:
            pushed.append(name)

    return FieldAnalysis(
        all_fields=tuple(all_fields),
        included_fields=tuple(included),
        excluded_fields=tuple(excluded),
        nested_fields=tuple(nested),
        lazy_fields=tuple(lazy),
        pushed_fields=tuple(pushed),
    )


def analyze_complexity(descriptor: Descriptor) -> ComplexityAnalysis:
    """
    Compute nesting depth, total field count and the complexity score

    score = total_field_count * (1 + nested_depth * 0.5)
    """
    field_count = len(descriptor.fields)
    nested_depth = 0
    nested_field_count = 0
    total_field_count = field_count

    for spec in descriptor.fields.values():
        if spec.nested is not None:
            child = analyze_complexity(spec.nested)
            nested_depth = max(nested_depth, 1 + child.nested_depth)
            nested_field_count += 1
            total_field_count += child.total_field_count

    score = total_field_count * (1 + nested_depth * 0.5)

    return ComplexityAnalysis(
        field_count=field_count,
        nested_field_count=nested_field_count,
        nested_depth=nested_depth,
        total_field_count=total_field_count,
        complexity_score=score,
        complexity_level=complexity_level(score),
    )


def complexity_level(score: float) -> str:
    if score < 5:
        return "simple"
    elif score < 20:
        return "moderate"
    elif score < 50:
        return "complex"
    else:
        return "very_complex"


def identify_optimization_opportunities(
    fields: FieldAnalysis,
    complexity: ComplexityAnalysis,
    context: OptimizationContext,
) -> List[OptimizationOpportunity]:
    opportunities = []

    if fields.included_count > 10:
        opportunities.append(
            OptimizationOpportunity(
                type="field_selection",
                description="Projection includes many fields, consider optimizing field selection",
                impact="medium",
                fields=fields.included_fields,
            )
        )

    if fields.nested_count > 0:
        opportunities.append(
            OptimizationOpportunity(
                type="nested_fields",
                description="Projection includes nested fields, consider flattening or optimizing",
                impact="medium",
                fields=fields.nested_fields,
            )
        )

    if context.supports_projection_pushdown and complexity.complexity_score > 10:
        opportunities.append(
            OptimizationOpportunity(
                type="pushdown",
                description="Projection is complex, consider pushing down to data source",
                impact="high",
            )
        )

    if context.supports_lazy_loading and fields.included_count > 5:
        opportunities.append(
            OptimizationOpportunity(
                type="lazy_loading",
                description="Projection includes many fields, consider lazy loading",
                impact="medium",
                fields=fields.included_fields,
            )
        )

    return opportunities


@dataclass(frozen=True)
class QueryAnalysis:
    """Shape of a structured query"""

    filter_count: int
    sort_count: int
    join_count: int
    filtered_columns: Tuple[str, ...] = ()
    sort_columns: Tuple[str, ...] = ()
    joined_sources: Tuple[str, ...] = ()
    projection: Optional[Analysis] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filter_count": self.filter_count,
            "sort_count": self.sort_count,
            "join_count": self.join_count,
            "filtered_columns": list(self.filtered_columns),
            "sort_columns": list(self.sort_columns),
            "joined_sources": list(self.joined_sources),
            "projection": self.projection.to_dict() if self.projection else None,
        }


def analyze_query(query: Any, context: Optional[OptimizationContext] = None) -> QueryAnalysis:
    """
    Analyze a structured query

    Args:
        query: Query or raw query mapping
        context: Optimization context

    Returns:
        Query analysis; the projection section is analyzed with analyze()
    """
    query = to_query(query)
    projection = analyze(query.projection, context) if query.projection is not None else None

    return QueryAnalysis(
        filter_count=len(query.filters),
        sort_count=len(query.sort),
        join_count=len(query.joins),
        filtered_columns=tuple(dict.fromkeys(c.column for c in query.filters)),
        sort_columns=tuple(s.column for s in query.sort),
        joined_sources=tuple(j.right_source for j in query.joins),
        projection=projection,
    )
