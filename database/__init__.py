"""Couche de persistance RokLearn : moteur relationnel + repli en mémoire."""
