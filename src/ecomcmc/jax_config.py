"""
JAX Configuration - MUST be imported before any JAX imports.

Points JAX at a persistent compilation cache so sweep kernels for the same
model and data shapes are reused across sessions.
"""
import os
from pathlib import Path

# --- PERSISTENT COMPILATION CACHE ---
_JAX_CACHE_DIR = Path.home() / ".cache" / "jax" / "ecomcmc_cache"
_JAX_CACHE_DIR.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_JAX_CACHE_DIR))
os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")
