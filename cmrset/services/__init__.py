"""Service layer exposing the CMRSET comparison workflow."""

from .experiment import CmrsetExperiment, ExperimentResult, run_experiment

__all__ = ["CmrsetExperiment", "ExperimentResult", "run_experiment"]
