"""Pre-deployment build integration and project type detection."""
import json
import logging
import os
import subprocess
from typing import Dict, List, Optional

from dreamhost_deployer.core.exceptions import BuildError
from dreamhost_deployer.core.models import BuildResult, DeploymentConfig, ProjectInfo

# (type, details, dependency names, output dir, exclusions)
FRAMEWORKS = [
    ('vite', 'Vite project detected', ['vite'], 'dist',
     ['node_modules', '.git', 'src', 'public', '*.config.js', '*.config.ts', '.env*']),
    ('cra', 'Create React App project detected', ['react-scripts'], 'build',
     ['node_modules', '.git', 'src', 'public', '.env*']),
    ('nextjs', 'Next.js project detected', ['next'], 'out',
     ['node_modules', '.git', 'src', 'pages', 'public', '.next', '.env*']),
    ('gatsby', 'Gatsby project detected', ['gatsby'], 'public',
     ['node_modules', '.git', 'src', '.cache', '.env*']),
    ('nuxt', 'Nuxt.js project detected', ['nuxt', '@nuxt/core'], 'dist',
     ['node_modules', '.git', 'assets', 'components', 'layouts', 'pages', 'plugins', 'static', '.nuxt', '.env*']),
    ('vue-cli', 'Vue CLI project detected', ['vue', '@vue/cli-service'], 'dist',
     ['node_modules', '.git', 'src', 'public', 'vue.config.js', '.env*']),
    ('svelte', 'Svelte/SvelteKit project detected', ['svelte', 'svelte-kit'], 'build',
     ['node_modules', '.git', 'src', 'static', 'svelte.config.js', '.env*']),
    ('angular', 'Angular project detected', ['angular', '@angular/core'], 'dist',
     ['node_modules', '.git', 'src', 'e2e', 'angular.json', '.env*']),
]

OPTIMIZATIONS: Dict[str, List[str]] = {
    'vite': [
        '- Use import.meta.env for environment variables',
        '- Enable build optimizations in vite.config.js',
        '- Consider using /assets/ for static files',
        '- Add base: "/" to vite.config.js for proper path resolution',
    ],
    'cra': [
        '- Use process.env.PUBLIC_URL for asset paths',
        '- Add "homepage": "." to package.json for relative paths',
        '- Create a .env.production file for production environment variables',
    ],
    'nextjs': [
        '- Use next export for static site generation',
        '- Configure basePath in next.config.js',
        '- Use next/image for optimized images',
    ],
    'gatsby': [
        '- Use gatsby-plugin-sitemap for SEO',
        '- Configure pathPrefix in gatsby-config.js',
        '- Use gatsby-image for optimized images',
    ],
    'nuxt': [
        '- Set target: "static" in nuxt.config.js',
        '- Configure generate.dir for custom output directory',
        '- Use nuxt/image for optimized images',
    ],
    'vue-cli': [
        '- Set publicPath: "./" in vue.config.js for relative paths',
        '- Enable modern build mode for better performance',
        '- Use vue/cli-plugin-pwa for offline support',
    ],
    'svelte': [
        '- Configure paths.base in svelte.config.js',
        '- Use "adapter-static" for static site generation',
        '- Consider URL rewriting for SPA mode',
    ],
    'angular': [
        '- Set "baseHref": "/" in angular.json',
        '- Enable production mode for optimized builds',
        '- Use Angular Universal for SSR if needed',
    ],
}

GENERIC_OPTIMIZATIONS = [
    '- Use relative paths for assets',
    '- Create a .htaccess file for Apache URL rewriting',
    '- Set correct base URL in your HTML',
]


def _troubleshooting_hints(error_output: str) -> List[str]:
    """Framework-specific advice for a failed build."""
    if 'vite' in error_output:
        if 'not found' in error_output:
            return ['Make sure Vite is installed: npm install vite --save-dev',
                    'Check your package.json for a build script: "build": "vite build"']
        if 'Cannot find module' in error_output:
            return ['Try running: npm install',
                    'Check for missing dependencies in your project']
    elif 'react-scripts' in error_output:
        return ['Make sure react-scripts is installed: npm install react-scripts --save-dev',
                'Check your package.json for a build script: "build": "react-scripts build"']
    elif 'next' in error_output:
        return ['Make sure Next.js is installed: npm install next --save-dev',
                'Check your package.json for a build script: "build": "next build"']
    return []


class BuildHandler:
    """Runs the configured build command before deployment."""

    def __init__(self, cwd: Optional[str] = None, logger: Optional[logging.Logger] = None):
        self.cwd = cwd or os.getcwd()
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def run_build(self, config: DeploymentConfig) -> BuildResult:
        """
        Execute the build command and locate its output directory.

        Returns:
            BuildResult with the absolute output path

        Raises:
            BuildError: If build integration is off or the command fails
        """
        if not config.build_integration or not config.build_command:
            raise BuildError("Build integration is not enabled or build command is not specified")

        command = config.build_command
        self.logger.warning(f"Running: {command}")
        self.logger.warning(f"Working directory: {self.cwd}")

        try:
            # Pass current environment so npm/yarn are found on PATH
            result = subprocess.run(
                command,
                shell=True,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                env={**os.environ, 'FORCE_COLOR': 'true'}
            )
        except (subprocess.SubprocessError, OSError) as e:
            raise BuildError(f"Build execution failed: {e}") from e

        if result.stdout:
            for line in result.stdout.strip().split('\n'):
                if line:
                    self.logger.info(f"  {line}")

        if result.returncode != 0:
            self.logger.error(f"Build failed with exit code {result.returncode}")
            if result.stderr:
                for line in result.stderr.strip().split('\n'):
                    if line:
                        self.logger.error(f"  {line}")
            hints = _troubleshooting_hints(f"{command}\n{result.stdout}\n{result.stderr}")
            if hints:
                self.logger.warning("Troubleshooting:")
                for hint in hints:
                    self.logger.warning(f"  - {hint}")
            raise BuildError(f"Build failed (exit {result.returncode}): {command}")

        if result.stderr and result.stderr.strip():
            self.logger.warning("Build warnings:")
            for line in result.stderr.strip().split('\n'):
                self.logger.warning(f"  {line}")

        output_path = os.path.abspath(os.path.join(self.cwd, config.build_output_dir or ''))
        if not os.path.isdir(output_path):
            self.logger.warning(f"Build output directory not found: {output_path}, creating it...")
            try:
                os.makedirs(output_path, exist_ok=True)
            except OSError as e:
                raise BuildError(f"Failed to create build output directory: {e}") from e

        self.logger.warning("Build complete")
        return BuildResult(success=True, output_path=output_path)

    def detect_project_type(self) -> ProjectInfo:
        """Identify the front-end framework from package.json and config files."""
        package_json = os.path.join(self.cwd, 'package.json')
        if not os.path.exists(package_json):
            return ProjectInfo(type='unknown', details='No package.json found')

        try:
            with open(package_json, 'r', encoding='utf-8') as f:
                package = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Error detecting project type: {e}")
            return ProjectInfo(type='unknown', details=f"Error: {e}")

        deps = {**package.get('dependencies', {}), **package.get('devDependencies', {})}
        has_vite_config = any(
            os.path.exists(os.path.join(self.cwd, name)) for name in ('vite.config.js', 'vite.config.ts')
        )

        for project_type, details, dep_names, output_dir, exclude in FRAMEWORKS:
            if any(name in deps for name in dep_names) or (project_type == 'vite' and has_vite_config):
                return ProjectInfo(project_type, details, 'npm run build', output_dir, list(exclude))

        scripts = package.get('scripts', {})
        output_dir = next(
            (d for d in ('dist', 'build') if os.path.isdir(os.path.join(self.cwd, d))), None
        )
        return ProjectInfo(
            type='generic',
            details='Generic Node.js project detected',
            build_command='npm run build' if 'build' in scripts else None,
            output_dir=output_dir,
            exclude=['node_modules', '.git', 'src', '.env*'],
        )


def suggest_optimizations(project_type: str) -> List[str]:
    return OPTIMIZATIONS.get(project_type, GENERIC_OPTIMIZATIONS)
