"""famgrid - GEDCOM family tree editor backend.

FastAPI server that loads a GEDCOM tree, lays it out as a generation grid and
applies edits to it.
"""

import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("FAMGRID_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("famgrid")

from fastapi import FastAPI, HTTPException, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from adapters import export_json, import_csv_text, import_json
from errors import AdapterError, EmptyGraphError, FamgridError, TraversalBoundError
from gedcom_record import Record
from gedcom_utils import (
    FamilyTree,
    find_individual,
    find_individual_by_id,
    get_all_families,
    get_all_individuals,
    get_children,
    get_family_data,
    get_individual_data,
    get_parents,
    get_spouses,
    parse_gedcom_content,
    parse_gedcom_lines,
)
from tree_edit import (
    add_child,
    add_parents,
    add_sibling,
    add_spouse,
    delete_family,
    delete_field,
    delete_individual,
    set_field,
    set_nested_field,
)
from tree_layout import compute_layout
from undo_history import MAX_HISTORY, UndoHistory

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173"

# Global state
current_tree: FamilyTree = parse_gedcom_content(None)
history = UndoHistory(max_history=int(os.getenv("FAMGRID_MAX_HISTORY", str(MAX_HISTORY))))


# Create FastAPI app
app = FastAPI(
    title="famgrid",
    description="GEDCOM family tree editor with generation grid layout",
    version="1.0.0",
)

# Configure CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("FAMGRID_CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class NewRelativeRequest(BaseModel):
    """A new person to add next to the selected one."""
    name: str | None = None
    sex: str | None = None


class NewParentsRequest(BaseModel):
    father_name: str | None = None
    mother_name: str | None = None


class FieldUpdateRequest(BaseModel):
    """Set `tag` (or `parent_tag`/`tag`, e.g. BIRT/DATE) to `value`; None removes a direct field."""
    tag: str
    value: str | None = None
    parent_tag: str | None = None
    is_date: bool = False


class JsonImportRequest(BaseModel):
    document: dict


class TreeLoadedResponse(BaseModel):
    """Response after loading a tree."""
    message: str
    individual_count: int
    family_count: int
    individuals: list[dict]
    report: dict


class LayoutResponse(BaseModel):
    """Generation rows, each listing its nodes left to right."""
    anchor: str | None
    rows: list[dict]
    errors: list[dict]


class MutationResponse(BaseModel):
    message: str
    created: list[dict] = []
    deleted: list[str] = []


# Helpers

def load_tree(tree: FamilyTree, source: str) -> TreeLoadedResponse:
    global current_tree
    current_tree = tree
    history.clear()
    individuals = get_all_individuals(tree)
    logger.info(f"Loaded {source} with {len(individuals)} individuals and {len(tree.families)} families")
    return TreeLoadedResponse(
        message=f"Successfully loaded {source}",
        individual_count=len(individuals),
        family_count=len(tree.families),
        individuals=individuals,
        report=tree.report.to_dict(),
    )


def require_individual(person_id: str, allow_name: bool = False) -> Record:
    """Resolve a person by xref; name matching is only for read-only lookups."""
    if allow_name:
        individual = find_individual(current_tree, person_id)
    else:
        individual = find_individual_by_id(current_tree, person_id)
    if not individual:
        logger.warning(f"Person {person_id} not found")
        raise HTTPException(status_code=404, detail=f"Person with ID {person_id} not found")
    return individual


def require_family(family_id: str) -> Record:
    if not family_id.startswith('@'):
        family_id = f"@{family_id}@"
    family = current_tree.get_family(family_id)
    if not family:
        logger.warning(f"Family {family_id} not found")
        raise HTTPException(status_code=404, detail=f"Family with ID {family_id} not found")
    return family


def run_mutation(description: str, operation, *args):
    """Apply `operation` to the current tree; the undo snapshot is kept only when it succeeds."""
    before = current_tree.to_gedcom()
    try:
        result = operation(current_tree, *args)
    except FamgridError as e:
        logger.warning(f"{operation.__name__} failed: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    history.save_snapshot(description, before)
    return result


def restore(text: str) -> None:
    global current_tree
    report = current_tree.report
    current_tree = FamilyTree(parse_gedcom_lines(text.splitlines()), report)


# Endpoints

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    logger.debug("Health check requested")
    return {
        "status": "healthy",
        "individual_count": len(current_tree.individuals),
        "family_count": len(current_tree.families),
    }


@app.post("/upload-gedcom", response_model=TreeLoadedResponse)
async def upload_gedcom(file: UploadFile = File(...)):
    """Upload and parse a GEDCOM file."""
    logger.info(f"Received GEDCOM file upload: {file.filename}")

    if not file.filename or not file.filename.lower().endswith(('.ged', '.gedcom')):
        logger.warning(f"Invalid file type: {file.filename}")
        raise HTTPException(status_code=400, detail="File must be a GEDCOM file (.ged or .gedcom)")

    content = await file.read()
    logger.debug(f"Read {len(content)} bytes from file")
    try:
        content_str = content.decode('utf-8')
    except UnicodeDecodeError:
        logger.info("UTF-8 decode failed, trying latin-1 encoding")
        content_str = content.decode('latin-1')

    return load_tree(parse_gedcom_content(content_str), file.filename)


@app.post("/upload-csv", response_model=TreeLoadedResponse)
async def upload_csv(file: UploadFile = File(...)):
    """Upload a CSV of people and convert it to a tree."""
    logger.info(f"Received CSV file upload: {file.filename}")
    content = await file.read()
    try:
        gedcom_text = import_csv_text(content.decode('utf-8-sig'))
    except (AdapterError, UnicodeDecodeError) as e:
        logger.warning(f"CSV import failed: {e}")
        raise HTTPException(status_code=400, detail=f"Failed to import CSV file: {e}")
    return load_tree(parse_gedcom_content(gedcom_text), file.filename or "CSV file")


@app.post("/import-json", response_model=TreeLoadedResponse)
async def import_json_document(request: JsonImportRequest):
    """Load a tree from a GEDCOM-JSON document."""
    try:
        lines = import_json(request.document)
    except AdapterError as e:
        logger.warning(f"JSON import failed: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return load_tree(FamilyTree(parse_gedcom_lines(lines)), "JSON document")


@app.get("/individuals")
async def get_individuals():
    """Get all individuals from the loaded tree."""
    individuals = get_all_individuals(current_tree)
    logger.info(f"Returning {len(individuals)} individuals")
    return {"individuals": individuals}


@app.get("/individuals/{person_id}")
async def get_individual(person_id: str):
    """Get one individual (by ID or name) with their parents, spouses and children."""
    individual = require_individual(person_id, allow_name=True)
    return {
        "individual": get_individual_data(individual),
        "parents": [get_individual_data(p) for p in get_parents(current_tree, individual)],
        "spouses": [get_individual_data(s) for s in get_spouses(current_tree, individual)],
        "children": [get_individual_data(c) for c in get_children(current_tree, individual)],
    }


@app.get("/families")
async def get_families():
    return {"families": get_all_families(current_tree)}


@app.get("/families/{family_id}")
async def get_family(family_id: str):
    return {"family": get_family_data(require_family(family_id))}


@app.get("/layout", response_model=LayoutResponse)
async def get_layout():
    """Compute the generation grid for the loaded tree."""
    try:
        layout = compute_layout(current_tree)
    except EmptyGraphError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TraversalBoundError as e:
        logger.error(f"Layout aborted: {e}")
        raise HTTPException(status_code=409, detail=str(e))

    return LayoutResponse(
        anchor=layout.anchor.id,
        rows=layout.to_rows(),
        errors=[fault.to_dict() for fault in layout.errors],
    )


@app.post("/individuals/{person_id}/spouse", response_model=MutationResponse)
async def post_spouse(person_id: str, request: NewRelativeRequest):
    individual = require_individual(person_id)
    partner = run_mutation(f"Add spouse to {individual.id}", add_spouse, individual, request.name, request.sex)
    return MutationResponse(message=f"Added spouse {partner.id}", created=[get_individual_data(partner)])


@app.post("/individuals/{person_id}/child", response_model=MutationResponse)
async def post_child(person_id: str, request: NewRelativeRequest):
    individual = require_individual(person_id)
    child = run_mutation(f"Add child to {individual.id}", add_child, individual, request.name, request.sex)
    return MutationResponse(message=f"Added child {child.id}", created=[get_individual_data(child)])


@app.post("/families/{family_id}/child", response_model=MutationResponse)
async def post_family_child(family_id: str, request: NewRelativeRequest):
    family = require_family(family_id)
    child = run_mutation(f"Add child to {family.id}", add_child, family, request.name, request.sex)
    return MutationResponse(message=f"Added child {child.id}", created=[get_individual_data(child)])


@app.post("/individuals/{person_id}/sibling", response_model=MutationResponse)
async def post_sibling(person_id: str, request: NewRelativeRequest):
    individual = require_individual(person_id)
    sibling = run_mutation(f"Add sibling to {individual.id}", add_sibling, individual, request.name, request.sex)
    return MutationResponse(message=f"Added sibling {sibling.id}", created=[get_individual_data(sibling)])


@app.post("/individuals/{person_id}/parents", response_model=MutationResponse)
async def post_parents(person_id: str, request: NewParentsRequest):
    individual = require_individual(person_id)
    parents = run_mutation(
        f"Add parents to {individual.id}", add_parents, individual, request.father_name, request.mother_name
    )
    return MutationResponse(
        message=f"Added {len(parents)} parents",
        created=[get_individual_data(p) for p in parents],
    )


@app.delete("/individuals/{person_id}", response_model=MutationResponse)
async def remove_individual(person_id: str):
    individual = require_individual(person_id)
    deleted_families = run_mutation(f"Delete {individual.id}", delete_individual, individual)
    return MutationResponse(message=f"Deleted {individual.id}", deleted=[individual.id, *deleted_families])


@app.delete("/families/{family_id}", response_model=MutationResponse)
async def remove_family(family_id: str):
    family = require_family(family_id)
    run_mutation(f"Delete {family.id}", delete_family, family)
    return MutationResponse(message=f"Deleted {family.id}", deleted=[family.id])


def apply_field_update(tree: FamilyTree, individual: Record, request: FieldUpdateRequest) -> None:
    if request.parent_tag:
        set_nested_field(individual, request.parent_tag, request.tag, request.value, request.is_date)
    elif request.value is None:
        delete_field(individual, request.tag)
    else:
        set_field(individual, request.tag, request.value)


@app.put("/individuals/{person_id}/fields")
async def update_field(person_id: str, request: FieldUpdateRequest):
    """Update a field such as NAME or SEX, or a nested one such as BIRT/DATE."""
    individual = require_individual(person_id)
    field_path = f"{request.parent_tag}/{request.tag}" if request.parent_tag else request.tag
    run_mutation(f"Update {field_path} of {individual.id}", apply_field_update, individual, request)
    return {"individual": get_individual_data(individual)}


@app.get("/export/gedcom", response_class=PlainTextResponse)
async def export_gedcom():
    """Export the current tree as GEDCOM text."""
    return PlainTextResponse(current_tree.to_gedcom(), media_type="text/plain")


@app.get("/export/json")
async def export_tree_json():
    try:
        return export_json(current_tree).model_dump()
    except AdapterError as e:
        logger.warning(f"JSON export failed: {e}")
        raise HTTPException(status_code=409, detail=str(e))


@app.post("/undo")
async def undo():
    text = history.undo(current_tree.to_gedcom())
    if text is None:
        raise HTTPException(status_code=409, detail="Nothing to undo")
    restore(text)
    return history.state()


@app.post("/redo")
async def redo():
    text = history.redo(current_tree.to_gedcom())
    if text is None:
        raise HTTPException(status_code=409, detail="Nothing to redo")
    restore(text)
    return history.state()


@app.get("/history")
async def get_history():
    return {
        **history.state(),
        "undo": history.get_undo_stack(),
        "redo": history.get_redo_stack(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=os.getenv("FAMGRID_HOST", "0.0.0.0"), port=int(os.getenv("FAMGRID_PORT", "8000")))
