"""Component model, manifests, release resolution, install ordering and transformers for Knative operator components."""

__version__ = "0.1.0"