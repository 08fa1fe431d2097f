"""
Model training, evaluation and prediction.
"""

from .base import Scorer, Trainer
from .maxent import MaxentTrainer, LogisticTrainer, get_trainer, create_maxent_pipeline
from .training import fit_model, save_trained_model, load_trained_model
from .evaluation import EvaluationResult, stratified_split, evaluate_scorer
from .prediction import predict_suitability

__all__ = [
    'Scorer',
    'Trainer',
    'MaxentTrainer',
    'LogisticTrainer',
    'get_trainer',
    'create_maxent_pipeline',
    'fit_model',
    'save_trained_model',
    'load_trained_model',
    'EvaluationResult',
    'stratified_split',
    'evaluate_scorer',
    'predict_suitability',
]
