# ================================================================
# File     : module_loader.py
# Purpose  : Dynamically load and execute assessment modules
# Notes    : Modules live in groupkennel/modules/<provider>/ and expose
#            run(client, args). Files starting with '_' are helpers,
#            never run directly.
# ================================================================

import importlib
import pathlib
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

from groupkennel.core.errors import DirectoryUnavailableError, GraphAuthError
from groupkennel.core.utils import fncPrintMessage

MODULES_ROOT = pathlib.Path(__file__).resolve().parent.parent / "modules"


# ================================================================
# Function: fncLoadModule
# Purpose : Import groupkennel.modules.<provider>.<module_name>
# Notes   : Returns the imported module or None if not found
# ================================================================
def fncLoadModule(provider: str, module_name: str):
    mod_path = f"groupkennel.modules.{provider}.{module_name}"
    try:
        mod = importlib.import_module(mod_path)
    except ModuleNotFoundError:
        fncPrintMessage(f"Module not found: {provider}/{module_name}", "error")
        return None
    fncPrintMessage(f"Loaded module: {mod_path}", "debug")
    return mod


# ================================================================
# Function: fncRunModule
# Purpose : Execute a loaded module's run(client, args)
# Notes   : Auth failures and a failed group listing propagate (fatal);
#           anything else is logged and returned as {"error": ...} so
#           other modules still run.
# ================================================================
def fncRunModule(provider: str, module_name: str, client, args) -> Any:
    mod = fncLoadModule(provider, module_name)
    if not mod or not hasattr(mod, "run"):
        if mod:
            fncPrintMessage(f"Module {module_name} missing 'run' function.", "warn")
        return None

    fncPrintMessage(f"Starting module: {provider}/{module_name}", "info")
    try:
        result = mod.run(client, args)
    except (GraphAuthError, DirectoryUnavailableError):
        raise
    except Exception as ex:
        fncPrintMessage(f"Module {module_name} raised an exception: {ex}", "error")
        fncPrintMessage(traceback.format_exc(), "debug")
        return {"error": str(ex)}
    fncPrintMessage(f"Module complete: {provider}/{module_name}", "success")
    return result


# ================================================================
# Function: fncDiscoverModules
# Purpose : List runnable modules for a provider
# ================================================================
def fncDiscoverModules(provider: str, root: Optional[pathlib.Path] = None) -> List[str]:
    base = pathlib.Path(root or MODULES_ROOT) / provider
    if not base.is_dir():
        fncPrintMessage(f"No modules directory for provider '{provider}' (expected: {base})", "warn")
        return []

    mods = [
        p.stem for p in sorted(base.iterdir())
        if p.is_file() and p.suffix == ".py" and not p.name.startswith("_")
    ]
    fncPrintMessage(f"Discovered modules for {provider}: {mods}", "debug")
    return mods


# ================================================================
# Function: fncRunAllModules
# Purpose : Run every discovered module for a provider
# Notes   : Returns { module_name: result_or_error }. Skipped modules
#           map to {"skipped": True}. Parallel when args.parallel > 1.
# ================================================================
def fncRunAllModules(provider: str, client, args, skip_list: Optional[List[str]] = None) -> Dict[str, Any]:
    skip_list = skip_list or []
    results: Dict[str, Any] = {}
    modules = fncDiscoverModules(provider)

    if not modules:
        fncPrintMessage(f"No modules to run for provider '{provider}'", "warn")
        return results

    to_run = []
    for mod in modules:
        if mod in skip_list:
            fncPrintMessage(f"Skipping module (skip-list): {mod}", "debug")
            results[mod] = {"skipped": True}
        else:
            to_run.append(mod)

    threads = getattr(args, "parallel", 1) or 1
    fncPrintMessage(f"Running {len(to_run)} module(s) for {provider} (parallel={threads})", "info")

    if threads <= 1:
        for mod in to_run:
            results[mod] = fncRunModule(provider, mod, client, args)
    else:
        with ThreadPoolExecutor(max_workers=threads) as executor:
            futures = {executor.submit(fncRunModule, provider, mod, client, args): mod for mod in to_run}
            for future in as_completed(futures):
                results[futures[future]] = future.result()

    fncPrintMessage("All modules completed.", "success")
    # keep discovery order regardless of completion order
    return {m: results[m] for m in modules if m in results}
