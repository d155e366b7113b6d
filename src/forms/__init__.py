"""Energy forms module.

This package contains the weighted scalar terms that make up an objective:
- Form: base class applying the weight and the lagging state machine
- LaggedRegForm: quadratic penalty towards a lagged state
- ElasticForm, InertiaForm: potentials of an implicit time step
- ContactForm, FrictionForm: barrier contact and lagged smooth friction
- BoundaryPenaltyForm, AugmentedLagrangianPolicy: augmented-Lagrangian constraints
- CompositeForm: the sum of forms handed to solvers
"""

from __future__ import annotations

from forms.augmented_lagrangian import AugmentedLagrangianPolicy, BoundaryPenaltyForm
from forms.base import Form
from forms.composite import CompositeForm
from forms.contact import ContactForm
from forms.elastic import ElasticForm
from forms.friction import FrictionForm
from forms.inertia import InertiaForm
from forms.lagged_reg import LaggedRegForm

__all__ = [
    "Form",
    "CompositeForm",
    # Regularization
    "LaggedRegForm",
    # Potentials
    "ElasticForm",
    "InertiaForm",
    # Contact
    "ContactForm",
    "FrictionForm",
    # Constraints
    "BoundaryPenaltyForm",
    "AugmentedLagrangianPolicy",
]
