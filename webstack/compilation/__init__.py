"""
Provisioning backends.

The Pulumi backend needs the `aws` extra and is imported on demand:

    from webstack.compilation.pulumi_compiler import PulumiCompiler
"""

from webstack.compilation.compiler import CompilationError, CompiledTopology, Compiler

__all__ = [
    "CompilationError",
    "CompiledTopology",
    "Compiler",
]
