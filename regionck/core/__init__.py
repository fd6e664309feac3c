"""
regionck.core: shared value types used by every analyzer component.

Modules:
  - span: best-effort source locations
  - lifetimes: the Lifetime tag (concrete, parameter, 'static, elided, synthetic)
  - types_core: owned/reference/struct/callable types, signatures, struct defs
  - diagnostics: Diagnostic record and the stable DiagnosticKind taxonomy
  - errors: LifetimeError hierarchy and RegionContractViolation
"""

__all__ = [
	"span",
	"lifetimes",
	"types_core",
	"diagnostics",
	"errors",
]
