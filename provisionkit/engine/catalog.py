"""
The fixed tool catalog.

Tools are declared in dependency order: a tool may only require tools that
appear before it. All per-tool behaviour (how to find it, how to install it,
what to record) is data here; the pipeline stages never branch on tool names.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from provisionkit.core.exceptions import CatalogError
from provisionkit.engine.installer import (
    ArchiveInstaller,
    PackageManagerInstaller,
    PostInstallCommand,
)
from provisionkit.engine.models import ToolSpec
from provisionkit.engine.probe import (
    EnvironmentVariable,
    ExecutableLookup,
    InstallDirGlob,
    PackageManagerPrefix,
)

logger = logging.getLogger(__name__)


JDK_VERSION = "11.0.2"
NODE_VERSION = "14.17.0"
ANDROID_CMDLINE_TOOLS_BUILD = "8512546"
APPIUM_PACKAGE = "appium@2.0.0"
APPIUM_DOCTOR_PACKAGE = "appium-doctor@1.16.2"

ANDROID_PACKAGES = ("platform-tools", "platforms;android-30", "build-tools;30.0.3")

_JDK_BASE_URL = "https://download.java.net/java/GA/jdk11/9/GPL"
_NODE_BASE_URL = f"https://nodejs.org/dist/v{NODE_VERSION}"
_ANDROID_BASE_URL = "https://dl.google.com/android/repository"


JDK = ToolSpec(
    name="jdk",
    display_name="OpenJDK 11",
    env_var="JAVA_HOME",
    probes=(
        # /usr/bin/java on macOS is a stub that exists even without a JDK
        ExecutableLookup("javac", os=("linux",)),
        InstallDirGlob(
            (
                "/Library/Java/JavaVirtualMachines/jdk-11*.jdk/Contents/Home",
                "/Library/Java/JavaVirtualMachines/*11*/Contents/Home",
                "{tools_dir}/jdk-11*/Contents/Home",
                "/Library/Java/JavaVirtualMachines/*/Contents/Home",
            ),
            os=("macos",),
        ),
        InstallDirGlob(
            (
                "/usr/lib/jvm/java-11-*",
                "/usr/lib/jvm/jdk-11*",
                "{tools_dir}/jdk-11*",
                "/usr/lib/jvm/*",
            ),
            os=("linux",),
        ),
        PackageManagerPrefix("/usr/libexec/java_home", ("-v", "11"), os=("macos",)),
        PackageManagerPrefix(
            "brew",
            ("--prefix", "--installed", "openjdk@11"),
            subpath="libexec/openjdk.jdk/Contents/Home",
            os=("macos",),
        ),
        EnvironmentVariable("JAVA_HOME"),
    ),
    installer=ArchiveInstaller(
        urls={
            "macos": f"{_JDK_BASE_URL}/openjdk-{JDK_VERSION}_osx-x64_bin.tar.gz",
            "linux-x64": f"{_JDK_BASE_URL}/openjdk-{JDK_VERSION}_linux-x64_bin.tar.gz",
        },
        destination={"*": f"{{tools_dir}}/jdk-{JDK_VERSION}"},
    ),
    version_command=("bin/java", "-version"),
    marker="bin/javac",
)


NODE = ToolSpec(
    name="node",
    display_name="Node.js",
    env_var="NODE_HOME",
    probes=(
        ExecutableLookup("node"),
        InstallDirGlob(
            (
                "/usr/local/lib/nodejs/node-v14*",
                "{tools_dir}/node-v14*",
                "{tools_dir}/node-v*",
            )
        ),
        PackageManagerPrefix(
            "brew", ("--prefix", "--installed", "node@14"), os=("macos",)
        ),
        PackageManagerPrefix("brew", ("--prefix", "--installed", "node"), os=("macos",)),
        EnvironmentVariable("NODE_HOME"),
    ),
    installer=ArchiveInstaller(
        urls={
            "macos": f"{_NODE_BASE_URL}/node-v{NODE_VERSION}-darwin-x64.tar.gz",
            "linux-x64": f"{_NODE_BASE_URL}/node-v{NODE_VERSION}-linux-x64.tar.gz",
            "linux-arm64": f"{_NODE_BASE_URL}/node-v{NODE_VERSION}-linux-arm64.tar.gz",
        },
        destination={"*": f"{{tools_dir}}/node-v{NODE_VERSION}"},
    ),
    version_command=("bin/node", "--version"),
    marker="bin/node",
)


ANDROID_SDK = ToolSpec(
    name="android-sdk",
    display_name="Android SDK",
    env_var="ANDROID_HOME",
    probes=(
        ExecutableLookup("sdkmanager", strip_suffix=("cmdline-tools", "latest", "bin")),
        ExecutableLookup("adb", strip_suffix=("platform-tools",)),
        InstallDirGlob(("~/Library/Android/sdk",), os=("macos",)),
        InstallDirGlob(("~/Android/Sdk",), os=("linux",)),
        EnvironmentVariable("ANDROID_HOME"),
        EnvironmentVariable("ANDROID_SDK_ROOT"),
    ),
    installer=ArchiveInstaller(
        urls={
            "macos": f"{_ANDROID_BASE_URL}/commandlinetools-mac-{ANDROID_CMDLINE_TOOLS_BUILD}_latest.zip",
            "linux": f"{_ANDROID_BASE_URL}/commandlinetools-linux-{ANDROID_CMDLINE_TOOLS_BUILD}_latest.zip",
        },
        destination={
            "macos": "~/Library/Android/sdk/cmdline-tools/latest",
            "linux": "~/Android/Sdk/cmdline-tools/latest",
        },
        post_install=(
            PostInstallCommand(
                ("cmdline-tools/latest/bin/sdkmanager", "--licenses"),
                input="y\n" * 50,
                required=False,
                description="accept Android SDK licenses",
            ),
            PostInstallCommand(
                ("cmdline-tools/latest/bin/sdkmanager", *ANDROID_PACKAGES),
                required=False,
                description="install Android platform packages",
            ),
        ),
    ),
    version_command=("platform-tools/adb", "version"),
    path_entries=("cmdline-tools/latest/bin", "platform-tools"),
    extra_env=("ANDROID_SDK_ROOT",),
    marker="cmdline-tools/latest/bin/sdkmanager",
)


APPIUM = ToolSpec(
    name="appium",
    display_name="Appium",
    env_var="APPIUM_PATH",
    probes=(
        ExecutableLookup("appium", strip_suffix=(), resolve_symlinks=False),
        PackageManagerPrefix("npm", ("prefix", "-g"), subpath="bin"),
        EnvironmentVariable("APPIUM_PATH", strip_suffix=("appium",)),
    ),
    installer=PackageManagerInstaller(
        "npm",
        APPIUM_PACKAGE,
        post_install=(
            PostInstallCommand(
                ("npm", "install", "-g", APPIUM_DOCTOR_PACKAGE),
                required=False,
                description="install appium-doctor",
            ),
            PostInstallCommand(
                ("appium-doctor",),
                required=False,
                description="check the setup with appium-doctor",
                show_output=True,
            ),
        ),
    ),
    version_command=("appium", "--version"),
    path_entries=("",),
    env_target="appium",
    marker="appium",
    requires=("node",),
)


class Catalog:
    """
    Ordered, validated set of tool specs.

    Raises:
        CatalogError: On duplicate names or a requirement that is unknown or
            declared after the tool requiring it
    """

    def __init__(self, tools: Sequence[ToolSpec]):
        self.tools: List[ToolSpec] = list(tools)
        self._validate()

    def _validate(self):
        seen = set()
        for spec in self.tools:
            if spec.name in seen:
                raise CatalogError(f"Duplicate tool in catalog: {spec.name}")
            for required in spec.requires:
                if required not in seen:
                    raise CatalogError(
                        f"{spec.name} requires {required}, which must be declared before it"
                    )
            seen.add(spec.name)

    @property
    def names(self) -> List[str]:
        return [spec.name for spec in self.tools]

    def get(self, name: str) -> ToolSpec:
        """Look up a tool by name."""
        for spec in self.tools:
            if spec.name == name:
                return spec
        raise CatalogError(
            f"Unknown tool: {name} (available: {', '.join(self.names)})"
        )

    def select(self, names: Optional[Iterable[str]] = None) -> List[ToolSpec]:
        """
        Select tools plus everything they require, in catalog order.

        Args:
            names: Tool names; None selects the whole catalog

        Example:
            >>> [t.name for t in DEFAULT_CATALOG.select(["appium"])]
            ['node', 'appium']
        """
        if names is None:
            return list(self.tools)

        wanted = set()
        pending = list(names)
        while pending:
            spec = self.get(pending.pop())
            if spec.name not in wanted:
                wanted.add(spec.name)
                pending.extend(spec.requires)

        return [spec for spec in self.tools if spec.name in wanted]

    def __iter__(self):
        return iter(self.tools)

    def __len__(self) -> int:
        return len(self.tools)


DEFAULT_CATALOG = Catalog([JDK, NODE, ANDROID_SDK, APPIUM])
