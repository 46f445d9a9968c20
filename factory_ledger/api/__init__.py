"""
Factory Ledger API Application Factory
"""

from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .loans import router as loans_router
from .transactions import router as transactions_router
from .accounts import router as accounts_router
from .cashbook import router as cashbook_router
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Factory Ledger API",
        description="Loans, cash accounts and the daily cash book of a factory",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Cash Accounts"])
    app.include_router(cashbook_router, prefix="/cashbook", tags=["Cash Book"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "factory_ledger_api",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Factory Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "transactions": "/transactions",
                "accounts": "/accounts",
                "cashbook": "/cashbook"
            }
        }

    return app


app = create_app()


def run_server(host: str = "127.0.0.1", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "factory_ledger.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
