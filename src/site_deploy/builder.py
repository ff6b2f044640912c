"""
Image specification and build stage.

The served image is fixed at build time: an nginx base, the default server
definition removed, one nginx config file and one static-content directory
copied in, and one exposed port.
"""
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from site_deploy.exceptions import BuildFailure
from site_deploy.models import ImageReference

logger = logging.getLogger(__name__)

NGINX_CONFIG_TARGET = "/etc/nginx/nginx.conf"
NGINX_DEFAULT_SERVER = "/etc/nginx/conf.d/default.conf"
NGINX_HTML_ROOT = "/usr/share/nginx/html"


@dataclass(frozen=True)
class ImageSpec:
    """Static description of the served image."""
    base_image: str = "nginx:latest"
    config_file: str = "nginx.conf"
    static_dir: str = "app1/"
    exposed_port: int = 8080
    remove_default_server: bool = True

    @classmethod
    def from_settings(cls, settings) -> "ImageSpec":
        return cls(
            base_image=settings.base_image,
            config_file=settings.nginx_config_file,
            static_dir=settings.static_dir,
            exposed_port=settings.exposed_port,
        )

    @property
    def static_target(self) -> str:
        return f"{NGINX_HTML_ROOT}/{self.static_dir.strip('/')}/"

    def render(self) -> str:
        """Render the Dockerfile text for this spec."""
        lines = [f"FROM {self.base_image}"]
        if self.remove_default_server:
            lines.append(f"RUN rm {NGINX_DEFAULT_SERVER}")
        lines += [
            f"COPY {self.config_file} {NGINX_CONFIG_TARGET}",
            f"COPY {self.static_dir.rstrip('/')}/ {self.static_target}",
            f"EXPOSE {self.exposed_port}",
        ]
        return "\n".join(lines) + "\n"

    def validate_context(self, context: Union[str, Path]) -> List[str]:
        """Return the problems that would make a build from `context` fail."""
        context = Path(context)
        problems = []
        if not context.is_dir():
            return [f"Build context {context} is not a directory"]
        if not (context / self.config_file).is_file():
            problems.append(f"Missing nginx config file: {context / self.config_file}")
        if not (context / self.static_dir).is_dir():
            problems.append(f"Missing static content directory: {context / self.static_dir}")
        return problems

    def write(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.write_text(self.render(), encoding="utf-8")
        logger.info(f"Wrote Dockerfile to {path}")
        return path


class ImageBuilder:
    """Build the served image with the docker CLI."""

    def __init__(self, spec: ImageSpec, dockerfile: str = "Dockerfile"):
        self.spec = spec
        self.dockerfile = dockerfile

    def prepare_context(self, context: Union[str, Path]) -> Path:
        """Check the context and render the Dockerfile into it if absent."""
        context = Path(context)
        problems = self.spec.validate_context(context)
        if problems:
            raise BuildFailure(str(context), exit_code=1, output="\n".join(problems))

        dockerfile_path = context / self.dockerfile
        if not dockerfile_path.exists():
            self.spec.write(dockerfile_path)
        return dockerfile_path

    def build(self, image: ImageReference, context: Union[str, Path] = ".",
              build_args: Optional[List[str]] = None) -> ImageReference:
        """Build and tag `image` from `context`."""
        dockerfile_path = self.prepare_context(context)

        cmd = ["docker", "build", "-t", image.uri, "-f", str(dockerfile_path)]
        for arg in build_args or []:
            cmd += ["--build-arg", arg]
        cmd.append(str(context))

        logger.info(f"Building image {image.uri} from {context}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            raise BuildFailure(image.uri, exit_code=127, output="docker CLI not found on PATH") from None

        if result.returncode != 0:
            logger.error(f"docker build failed:\n{result.stderr[-2000:]}")
            raise BuildFailure(image.uri, exit_code=result.returncode, output=result.stderr)

        logger.info(f"Built image: {image.uri}")
        return image
