"""
Process entry point for the NannyGold booking API.
Platforms that look for an 'application' object (Elastic Beanstalk) import it from here.
"""

from nannygold.main import app

application = app

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(application, host="0.0.0.0", port=8000)
