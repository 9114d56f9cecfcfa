"""Static catalog of the dependencies and targets this tree knows how to build."""

from __future__ import annotations

from mpwbuild.models import Dependency, FeatureOptions, Target

DEPENDENCIES: dict[str, Dependency] = {
    "scrypt": Dependency(
        name="scrypt",
        link_objects=(
            "scrypt-crypto_aesctr.o",
            "scrypt-sha256.o",
            "scrypt-crypto_scrypt-nosse.o",
            "scrypt-memlimit.o",
            "scrypt-scryptenc_cpuperf.o",
            "scrypt-scryptenc.o",
        ),
    ),
    "bcrypt": Dependency(
        name="bcrypt",
        link_objects=(
            "crypt_blowfish.o",
            "crypt_gensalt.o",
            "wrapper.o",
            "x86.o",
        ),
    ),
}

_ALGORITHM_SOURCES = ("mpw-algorithm.c", "mpw-types.c", "mpw-util.c")

TARGETS: dict[str, Target] = {
    "mpw": Target(
        name="mpw",
        sources=(*_ALGORITHM_SOURCES, "mpw-cli.c"),
        dependencies=("scrypt",),
        libraries=("crypto",),
        features={
            # Colorized identicon, needs the curses development headers.
            "color": FeatureOptions(defines=("COLOR",), libraries=("curses",)),
        },
        hint="Now run ./install or use ./mpw",
    ),
    "mpw-bench": Target(
        name="mpw-bench",
        sources=(*_ALGORITHM_SOURCES, "mpw-bench.c"),
        dependencies=("scrypt", "bcrypt"),
        libraries=("crypto",),
        hint="Now use ./mpw-bench",
    ),
    "mpw-tests": Target(
        name="mpw-tests",
        sources=(*_ALGORITHM_SOURCES, "mpw-tests-util.c", "mpw-tests.c"),
        dependencies=("scrypt",),
        include_dirs=("/usr/include/libxml2", "/usr/local/include/libxml2"),
        libraries=("crypto", "xml2"),
        hint="Now use ./mpw-tests",
    ),
}

DEFAULT_TARGETS: tuple[str, ...] = ("mpw", "mpw-bench", "mpw-tests")

DEFAULT_FEATURES: dict[str, bool] = {"color": True}
