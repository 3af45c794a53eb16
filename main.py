"""
兼容入口：从 ollama2openai.main 导入应用
保留此文件以便使用 uvicorn main:app 或 python main.py 启动
"""

from ollama2openai.main import app, run

if __name__ == "__main__":
    run()
