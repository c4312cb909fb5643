"""Chart scene, themes and rendering.

This package contains:

- the declarative chart model (layers, scales, facets, labels)
- APA-style themes
- bar / scatter / boxplot strategies that turn a table into layers
- a matplotlib renderer

Rendering uses the Agg backend and can save to disk, so it works in headless CI/CD environments.
"""
